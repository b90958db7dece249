"""
Tests unitaires du client Google Sheets (MirrorStore).
"""

from unittest.mock import MagicMock

import pytest
import requests
from gspread.exceptions import APIError

from app.services.sheets_client import MirrorStore, RowUpdate, is_transient_sheets_error

from fakes import FakeWorksheet, GridLimitError


def make_api_error(status_code, message="error"):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"error": {"code": status_code, "message": message, "status": "ERR"}}
    response.text = message
    return APIError(response)


# ============================================================
# Classement des erreurs
# ============================================================

@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_erreurs_transitoires(status_code):
    assert is_transient_sheets_error(make_api_error(status_code)) is True


def test_erreur_reseau_transitoire():
    assert is_transient_sheets_error(requests.ConnectionError("reset")) is True


def test_erreur_definitive():
    assert is_transient_sheets_error(make_api_error(403, "The caller does not have permission")) is False


def test_exception_quelconque_non_transitoire():
    assert is_transient_sheets_error(RuntimeError("bug")) is False


# ============================================================
# Lecture de la colonne clé
# ============================================================

def test_index_ignore_les_lignes_vides():
    worksheet = FakeWorksheet([["Registration ID"], ["R1"], [], ["R2"]])

    index = MirrorStore(worksheet).read_key_index()

    assert index["R1"] == 2
    assert index["R2"] == 4
    assert "" not in index


def test_index_doublon_derniere_ligne():
    worksheet = FakeWorksheet([["Registration ID"], ["R1"], ["R1"]])
    assert MirrorStore(worksheet).read_key_index()["R1"] == 3


def test_feuille_vierge():
    assert MirrorStore(FakeWorksheet()).read_key_index() == {}


# ============================================================
# Écritures
# ============================================================

def test_batch_update_un_seul_appel():
    worksheet = FakeWorksheet([["Registration ID"], ["R1"], ["R2"]])

    MirrorStore(worksheet).batch_update_rows([
        RowUpdate(2, ["R1", "A"]),
        RowUpdate(3, ["R2", "B"]),
    ])

    calls = worksheet.calls_to("batch_update")
    assert len(calls) == 1
    assert [item["range"] for item in calls[0][1]] == ["A2:L2", "A3:L3"]


def test_listes_vides_aucun_appel():
    worksheet = FakeWorksheet()
    mirror = MirrorStore(worksheet)

    mirror.append_rows([])
    mirror.batch_update_rows([])
    mirror.write_rows([], start_row=2)

    assert worksheet.calls == []


def test_suppression_ordre_decroissant_sans_doublon():
    worksheet = FakeWorksheet([["H"], ["a"], ["b"], ["c"], ["d"]])

    deleted = MirrorStore(worksheet).delete_rows([2, 4, 2])

    assert deleted == 2
    assert [c[1] for c in worksheet.calls_to("delete_rows")] == [4, 2]
    assert worksheet.column_a() == ["H", "b", "d"]


def test_suppression_en_tete_interdite():
    with pytest.raises(ValueError):
        MirrorStore(FakeWorksheet([["H"], ["a"]])).delete_rows([1])


def test_redimensionnement_grille():
    worksheet = FakeWorksheet([["H"]], row_limit=1000)
    mirror = MirrorStore(worksheet)

    mirror.resize_rows(1501)
    mirror.resize_rows(0)

    assert worksheet.calls_to("resize") == [("resize", 1501), ("resize", 2)]


def test_ecriture_hors_grille_non_retentee():
    """values.update au-delà de la grille : erreur définitive, un seul appel."""
    worksheet = FakeWorksheet([["H"]], row_limit=3)

    with pytest.raises(GridLimitError):
        MirrorStore(worksheet).write_rows([["a"], ["b"], ["c"]], start_row=2)

    assert len(worksheet.calls_to("update")) == 1


def test_quota_retente(monkeypatch):
    """Erreur 429 au premier ajout → nouvel essai, puis succès."""
    monkeypatch.setattr("app.services.retry.time.sleep", lambda _: None)
    worksheet = FakeWorksheet([["Registration ID"]])
    worksheet.fail_on("append_rows", 1, make_api_error(429, "Quota exceeded"))

    MirrorStore(worksheet).append_rows([["R1"]])

    assert len(worksheet.calls_to("append_rows")) == 2
    assert worksheet.column_a() == ["Registration ID", "R1"]
