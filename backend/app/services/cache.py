"""
Petit cache mémoire à durée de vie, par process
(statistiques admin, recherche publique par téléphone).
Les entrées expirées sont purgées à chaque écriture ; au-delà de max_entries,
les plus anciennes sont évincées.
"""

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

DEFAULT_MAX_ENTRIES = 1024


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        now = self._clock()
        self._purge_expired(now)
        # Réinsertion en fin de dict : l'ordre d'insertion reste l'ordre d'âge
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now, value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Supprime une entrée, ou tout le cache si key est None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
