"""
Client du Google Sheet miroir (gspread).

MirrorStore expose les primitives utilisées par le réconciliateur :
lecture d'une colonne, ajout de lignes, mise à jour groupée par position,
effacement de la zone de données et suppression de lignes.
Chaque appel passe par retry_with_backoff ; seules les erreurs transitoires
(quota, 5xx, réseau) sont retentées.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Sequence

import gspread
import requests
from gspread.exceptions import APIError, WorksheetNotFound

from app.config import settings
from app.services.errors import UpstreamFatalError
from app.services.retry import retry_with_backoff
from app.services.sheet_schema import SHEET_SCHEMA, SheetSchema

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}
TRANSIENT_TOKENS = ("quota exceeded", "rate limit", "service is currently unavailable")
VALUE_INPUT_OPTION = "USER_ENTERED"


def is_transient_sheets_error(exc: Exception) -> bool:
    """Quota, erreurs serveur Google et coupures réseau sont retentables."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, APIError):
        status_code = getattr(getattr(exc, "response", None), "status_code", None)
        message = str(exc).lower()
        return status_code in TRANSIENT_STATUSES or any(token in message for token in TRANSIENT_TOKENS)
    return False


@dataclass(frozen=True)
class RowUpdate:
    """Réécriture complète de la ligne `row_number` (numérotation A1, en-tête = 1)."""
    row_number: int
    values: List[str]


class MirrorStore:
    """Accès au Sheet "Registrations" à travers un Worksheet gspread."""

    def __init__(self, worksheet: gspread.Worksheet, schema: SheetSchema = SHEET_SCHEMA):
        self.worksheet = worksheet
        self.schema = schema

    def _call(self, operation, label: str):
        return retry_with_backoff(operation, label=f"Google Sheets {label}", is_transient=is_transient_sheets_error)

    def read_column(self, letter: str) -> List[str]:
        """
        Valeurs d'une colonne entière, index 0 = ligne 1.
        Les cellules vides intermédiaires sont rendues comme "".
        """
        rows = self._call(lambda: self.worksheet.get(f"{letter}:{letter}"), f"lecture colonne {letter}")
        return [row[0] if row else "" for row in (rows or [])]

    def read_key_index(self) -> Dict[str, int]:
        """
        Carte identifiant → numéro de ligne construite depuis la colonne clé.
        En cas d'identifiant présent deux fois, la dernière ligne l'emporte.
        """
        index: Dict[str, int] = {}
        for position, value in enumerate(self.read_column(self.schema.key_column_letter()), start=1):
            key = str(value).strip()
            if key:
                index[key] = position
        return index

    def append_rows(self, rows: Sequence[Sequence[Any]], label: str = "ajout") -> None:
        if not rows:
            return
        self._call(
            lambda: self.worksheet.append_rows(
                [list(r) for r in rows],
                value_input_option=VALUE_INPUT_OPTION,
                table_range="A1",
            ),
            label,
        )

    def batch_update_rows(self, updates: Sequence[RowUpdate], label: str = "mise à jour") -> None:
        """Toutes les lignes du lot sont réécrites en un seul appel batch_update."""
        if not updates:
            return
        last = self.schema.last_column_letter()
        data = [
            {"range": f"A{u.row_number}:{last}{u.row_number}", "values": [list(u.values)]}
            for u in updates
        ]
        self._call(
            lambda: self.worksheet.batch_update(data, value_input_option=VALUE_INPUT_OPTION),
            label,
        )

    def write_header(self) -> None:
        last = self.schema.last_column_letter()
        self._call(
            lambda: self.worksheet.update(
                range_name=f"A1:{last}1",
                values=[self.schema.headers()],
                value_input_option=VALUE_INPUT_OPTION,
            ),
            "écriture en-tête",
        )

    def clear_data(self) -> None:
        """Efface toutes les lignes sous l'en-tête (reconstruction complète)."""
        last = self.schema.last_column_letter()
        self._call(lambda: self.worksheet.batch_clear([f"A2:{last}"]), "effacement")

    def resize_rows(self, row_count: int) -> None:
        """
        Fixe le nombre de lignes de la grille (en-tête compris).
        Au moins 2 : Sheets refuse une feuille dont toutes les lignes sont figées.
        """
        rows = max(row_count, 2)
        self._call(lambda: self.worksheet.resize(rows=rows), f"redimensionnement {rows} lignes")

    def write_rows(self, rows: Sequence[Sequence[Any]], start_row: int, label: str = "écriture") -> None:
        """Écrit un bloc contigu de lignes à partir de `start_row`."""
        if not rows:
            return
        last = self.schema.last_column_letter()
        end_row = start_row + len(rows) - 1
        self._call(
            lambda: self.worksheet.update(
                range_name=f"A{start_row}:{last}{end_row}",
                values=[list(r) for r in rows],
                value_input_option=VALUE_INPUT_OPTION,
            ),
            label,
        )

    def delete_rows(self, row_numbers: Sequence[int]) -> int:
        """
        Supprime les lignes données, de la plus basse à la plus haute position
        (ordre décroissant) : chaque suppression décale les lignes suivantes.
        """
        ordered = sorted(set(row_numbers), reverse=True)
        for row_number in ordered:
            if row_number <= 1:
                raise ValueError("La ligne d'en-tête ne peut pas être supprimée.")
            self._call(lambda r=row_number: self.worksheet.delete_rows(r), f"suppression ligne {row_number}")
        return len(ordered)


def _open_worksheet() -> gspread.Worksheet:
    if not settings.GOOGLE_SHEET_ID or not settings.GOOGLE_CREDENTIALS:
        raise UpstreamFatalError("GOOGLE_SHEET_ID et GOOGLE_CREDENTIALS doivent être configurés.")

    try:
        credentials = json.loads(settings.GOOGLE_CREDENTIALS)
        client = gspread.service_account_from_dict(credentials, scopes=SCOPES)
    except (ValueError, KeyError) as exc:
        logger.error("Identifiants Google invalides : %s", exc)
        raise UpstreamFatalError("Authentification Google Sheets impossible, vérifier GOOGLE_CREDENTIALS.") from exc

    spreadsheet = retry_with_backoff(
        lambda: client.open_by_key(settings.GOOGLE_SHEET_ID),
        label="Google Sheets ouverture",
        is_transient=is_transient_sheets_error,
    )
    try:
        return spreadsheet.worksheet(settings.GOOGLE_SHEET_NAME)
    except WorksheetNotFound:
        logger.info("Onglet %s absent, création.", settings.GOOGLE_SHEET_NAME)
        return spreadsheet.add_worksheet(
            title=settings.GOOGLE_SHEET_NAME,
            rows=1000,
            cols=len(SHEET_SCHEMA.columns),
        )


@lru_cache(maxsize=1)
def get_mirror_store() -> MirrorStore:
    """
    Handle MirrorStore construit une seule fois par process (évite de
    ré-authentifier à chaque requête). Injectable via dependency_overrides.
    """
    store = MirrorStore(_open_worksheet())
    logger.info("Client Google Sheets initialisé (onglet %s).", settings.GOOGLE_SHEET_NAME)
    return store
