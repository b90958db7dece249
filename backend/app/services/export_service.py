"""
Export CSV de toutes les inscriptions (téléchargement admin).
"""

import csv
import io
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.services import registration_store
from app.services.sheet_schema import (
    SheetColumn,
    SheetSchema,
    format_optional,
    format_timestamp,
)

EXPORT_SCHEMA = SheetSchema(
    [
        SheetColumn("registration_id", "Registration ID"),
        SheetColumn("name", "Name"),
        SheetColumn("company", "Company"),
        SheetColumn("phone", "Phone"),
        SheetColumn("address", "Address"),
        SheetColumn("city", "City"),
        SheetColumn("state", "State"),
        SheetColumn("attendance_days", "Days Attending"),
        SheetColumn("payment_id", "Payment ID", format_optional),
        SheetColumn("timestamp", "Timestamp", format_timestamp),
        SheetColumn("image_url", "Image URL"),
        SheetColumn("payment_screenshot_url", "Payment Screenshot URL", format_optional),
        SheetColumn("checked_in_at", "Checked In At", format_timestamp),
    ],
    key="registration_id",
)


def export_registrations_csv(db: Session) -> str:
    """
    Génère le CSV de toutes les inscriptions, plus anciennes d'abord.
    Retourne le contenu sous forme de string (UTF-8 BOM pour Excel).
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_SCHEMA.headers())

    for registration in registration_store.list_all(db):
        writer.writerow(EXPORT_SCHEMA.format_row(registration))

    return "\ufeff" + output.getvalue()  # BOM pour compatibilité Excel


def export_filename() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"expo-registrations-{stamp}.csv"
