"""
Schémas Pydantic pour les inscriptions (formulaire public + réponses).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.services.phone import normalize_phone

REQUIRED_TEXT_FIELDS = ("name", "company", "address", "city", "state", "attendance_days")


class RegistrationForm(BaseModel):
    """Champs texte du formulaire multipart POST /registrations."""
    name: str
    phone: str
    company: str
    address: str
    city: str
    state: str
    attendance_days: str

    # Paiement Razorpay (requis uniquement si PAYMENT_REQUIRED)
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None

    @field_validator(*REQUIRED_TEXT_FIELDS)
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        return v.strip()

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: str) -> str:
        return normalize_phone(v)

    @field_validator("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class RegistrationPublic(BaseModel):
    """Champs d'une inscription partageables avec le public (réponse 200 et 409)."""
    registration_id: str
    name: str
    phone: str
    company: str
    attendance_days: str
    image_url: str

    model_config = {"from_attributes": True}


class RegistrationConflict(BaseModel):
    """Réponse 409 : téléphone déjà inscrit, avec l'inscription existante."""
    detail: str
    registration: RegistrationPublic


class RegistrationAdmin(BaseModel):
    """Vue complète d'une inscription (endpoints admin)."""
    registration_id: str
    phone: str
    name: str
    company: str
    address: str
    city: str
    state: str
    attendance_days: str
    payment_id: Optional[str]
    image_url: str
    payment_screenshot_url: Optional[str] = None
    timestamp: datetime
    checked_in_at: Optional[datetime]
    needs_sync: bool

    model_config = {"from_attributes": True}


class RegistrationPage(BaseModel):
    """Page de résultats pour la liste admin paginée."""
    results: List[RegistrationAdmin]
    total: int
    page: int
    page_size: int
    total_pages: int
