"""
Retry avec backoff exponentiel pour les appels aux services externes
(Google Sheets, S3).

Délai avant la tentative i+1 : base_delay * 2**i.
Après la dernière tentative, l'exception d'origine est relancée telle quelle.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from app.config import settings
from app.services.errors import UpstreamFatalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always_transient(exc: Exception) -> bool:
    return not isinstance(exc, UpstreamFatalError)


def retry_with_backoff(
    operation: Callable[[], T],
    label: str = "appel externe",
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    is_transient: Callable[[Exception], bool] = _always_transient,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Exécute `operation` et la retente en cas d'erreur transitoire.

    - is_transient(exc) False → relance immédiate, sans nouvel essai
    - budget épuisé → relance la dernière exception, non modifiée
    """
    attempts = attempts or settings.RETRY_ATTEMPTS
    base_delay = settings.RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay
    sleep = sleep or time.sleep

    for attempt in range(attempts):
        try:
            return operation()
        except Exception as exc:
            if not is_transient(exc):
                logger.error("%s : erreur non retentable : %s", label, exc)
                raise
            if attempt == attempts - 1:
                logger.error("%s : échec après %d tentatives : %s", label, attempts, exc)
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s : tentative %d/%d échouée (%s), nouvel essai dans %.2fs",
                label, attempt + 1, attempts, exc, delay,
            )
            sleep(delay)

    raise RuntimeError("retry_with_backoff appelé avec attempts <= 0")
