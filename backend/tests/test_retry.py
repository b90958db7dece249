"""
Tests unitaires du retry avec backoff exponentiel.
"""

from unittest.mock import MagicMock, patch

import pytest

from app.services.errors import UpstreamFatalError
from app.services.retry import retry_with_backoff


def test_succes_premier_essai():
    sleeps = []
    assert retry_with_backoff(lambda: 42, attempts=3, base_delay=1, sleep=sleeps.append) == 42
    assert sleeps == []


def test_succes_apres_echecs_transitoires():
    """Deux échecs puis succès → délais 0.5 puis 1.0."""
    operation = MagicMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
    sleeps = []

    result = retry_with_backoff(operation, attempts=3, base_delay=0.5, sleep=sleeps.append)

    assert result == "ok"
    assert operation.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_budget_epuise_relance_exception_originale():
    """Budget épuisé → la dernière exception est relancée telle quelle."""
    last = ConnectionError("toujours en panne")
    operation = MagicMock(side_effect=[ConnectionError("1"), ConnectionError("2"), last])

    with pytest.raises(ConnectionError) as exc_info:
        retry_with_backoff(operation, attempts=3, base_delay=0, sleep=lambda _: None)

    assert exc_info.value is last
    assert operation.call_count == 3


def test_erreur_non_transitoire_pas_de_nouvel_essai():
    operation = MagicMock(side_effect=ValueError("requête invalide"))
    sleeps = []

    with pytest.raises(ValueError):
        retry_with_backoff(
            operation, attempts=5, base_delay=1,
            is_transient=lambda exc: False, sleep=sleeps.append,
        )

    assert operation.call_count == 1
    assert sleeps == []


def test_erreur_fatale_jamais_retentee_par_defaut():
    operation = MagicMock(side_effect=UpstreamFatalError("identifiants invalides"))

    with pytest.raises(UpstreamFatalError):
        retry_with_backoff(operation, attempts=3, base_delay=0, sleep=lambda _: None)

    assert operation.call_count == 1


def test_sleep_par_defaut_time_sleep():
    """Sans sleep explicite, time.sleep est utilisé (patchable)."""
    operation = MagicMock(side_effect=[TimeoutError("lent"), "ok"])

    with patch("app.services.retry.time.sleep") as mock_sleep:
        assert retry_with_backoff(operation, attempts=2, base_delay=2) == "ok"

    mock_sleep.assert_called_once_with(2)
