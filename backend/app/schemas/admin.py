"""
Schémas Pydantic pour les endpoints d'administration (stats, check-in).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class StatsResponse(BaseModel):
    """Statistiques du tableau de bord."""
    total_registrations: int
    checked_in: int
    pending_sync: int
    last_registration_time: Optional[datetime]


class CheckInRequest(BaseModel):
    """Corps de POST /admin/check-in."""
    registration_id: str

    @field_validator("registration_id")
    @classmethod
    def normalize_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant d'inscription est obligatoire.")
        return v.strip().upper()


class UndoCheckInRequest(CheckInRequest):
    """Corps de POST /admin/undo-check-in : le mot de passe admin est ressaisi."""
    password: str
