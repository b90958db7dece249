"""
Schéma ordonné des colonnes du Google Sheet "Registrations".

La position d'une colonne n'est jamais codée en dur ailleurs : le réconciliateur,
l'export et la reconstruction passent par SHEET_SCHEMA (nom → formatteur).
"""

from dataclasses import dataclass
from datetime import timezone
from typing import Any, Callable, Dict, List, Sequence
from zoneinfo import ZoneInfo

from gspread.utils import rowcol_to_a1

from app.config import settings

MISSING = "N/A"


def format_text(value: Any) -> str:
    return "" if value is None else str(value)


def format_optional(value: Any) -> str:
    return MISSING if value in (None, "") else str(value)


def format_timestamp(value: Any) -> str:
    """Date lisible dans le fuseau d'affichage (ex. 17/10/2026, 14:05:09)."""
    if value is None:
        return MISSING
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(settings.DISPLAY_TIMEZONE))
    return local.strftime("%d/%m/%Y, %H:%M:%S")


def format_phone(value: Any) -> str:
    # Apostrophe : sinon Sheets (USER_ENTERED) convertit le numéro en nombre
    return f"'{value}" if value else ""


@dataclass(frozen=True)
class SheetColumn:
    name: str                           # attribut de Registration
    header: str                         # libellé de la ligne d'en-tête
    formatter: Callable[[Any], str] = format_text


class SheetSchema:
    """Formatteur/parseur de lignes piloté par une liste ordonnée de colonnes."""

    def __init__(self, columns: Sequence[SheetColumn], key: str):
        self.columns = list(columns)
        self._index = {col.name: i for i, col in enumerate(self.columns)}
        if key not in self._index:
            raise ValueError(f"Colonne clé inconnue : {key}")
        self.key = key

    def headers(self) -> List[str]:
        return [col.header for col in self.columns]

    def format_row(self, record: Any) -> List[str]:
        """Transforme une inscription en ligne positionnelle."""
        return [col.formatter(getattr(record, col.name, None)) for col in self.columns]

    def parse_row(self, values: Sequence[Any]) -> Dict[str, str]:
        """Ligne du Sheet → dict par nom de colonne (les lignes courtes sont complétées)."""
        padded = list(values) + [""] * (len(self.columns) - len(values))
        return {col.name: padded[i] for i, col in enumerate(self.columns)}

    def column_letter(self, name: str) -> str:
        """Lettre A1 de la colonne (ex. "A" pour registration_id)."""
        return rowcol_to_a1(1, self._index[name] + 1).rstrip("0123456789")

    def key_column_letter(self) -> str:
        return self.column_letter(self.key)

    def last_column_letter(self) -> str:
        return self.column_letter(self.columns[-1].name)


SHEET_SCHEMA = SheetSchema(
    [
        SheetColumn("registration_id", "Registration ID"),
        SheetColumn("name", "Name"),
        SheetColumn("company", "Company"),
        SheetColumn("phone", "Phone", format_phone),
        SheetColumn("address", "Address"),
        SheetColumn("city", "City"),
        SheetColumn("state", "State"),
        SheetColumn("attendance_days", "Days Attending"),
        SheetColumn("payment_id", "Payment ID", format_optional),
        SheetColumn("timestamp", "Timestamp", format_timestamp),
        SheetColumn("image_url", "Image URL"),
        SheetColumn("checked_in_at", "Checked In At", format_timestamp),
    ],
    key="registration_id",
)
