"""
Tests unitaires du cache mémoire à durée de vie.
"""

from app.services.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_valeur_servie_avant_expiration():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("stats", {"total": 3})

    clock.now = 59
    assert cache.get("stats") == {"total": 3}


def test_valeur_expiree():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("stats", 1)

    clock.now = 60
    assert cache.get("stats") is None


def test_ttl_nul_desactive_le_cache():
    cache = TTLCache(0)
    cache.set("k", "v")
    assert cache.get("k") is None


def test_invalidation_ciblee_et_globale():
    cache = TTLCache(60)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.invalidate()
    assert cache.get("b") is None


def test_entrees_expirees_purgees_a_l_ecriture():
    """Des clés jamais relues ne s'accumulent pas : l'écriture suivante les purge."""
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    for phone in ("9000000001", "9000000002", "9000000003"):
        cache.set(("phone", phone), None)
    assert len(cache) == 3

    clock.now = 61
    cache.set(("phone", "9000000004"), None)

    assert len(cache) == 1


def test_taille_maximale_evince_la_plus_ancienne():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock, max_entries=2)
    cache.set("a", 1)
    clock.now = 1
    cache.set("b", 2)
    clock.now = 2
    cache.set("c", 3)

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_reecriture_d_une_cle_la_rajeunit():
    cache = TTLCache(60, max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)

    assert cache.get("a") == 10
    assert cache.get("b") is None
    assert len(cache) == 2
