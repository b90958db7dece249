"""
Service métier des inscriptions publiques.

Flux de soumission (submit_registration) :
  1. Vérifier que le téléphone n'est pas déjà inscrit (409 avec l'existant)
  2. Vérifier la signature de paiement (si PAYMENT_REQUIRED)
  3. Envoyer la photo de profil (+ capture de paiement éventuelle) sur S3
  4. Créer l'inscription avec needs_sync = true
Une erreur aux étapes 1 à 3 interrompt tout : aucune ligne n'est écrite.
Le Google Sheet n'est jamais appelé ici : le réconciliateur s'en charge.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

import qrcode
from sqlalchemy.orm import Session

from app.config import settings
from app.models.registration import Registration
from app.schemas.registration import RegistrationForm, RegistrationPublic
from app.services import registration_store
from app.services.cache import TTLCache
from app.services.errors import DuplicateRegistrationError
from app.services.image_storage import ALLOWED_IMAGE_TYPES, ImageUploader
from app.services.payment import verify_payment_signature

logger = logging.getLogger(__name__)

lookup_cache = TTLCache(settings.LOOKUP_CACHE_SECONDS)


@dataclass
class UploadedImage:
    """Fichier image reçu dans le formulaire multipart."""
    filename: str
    content_type: str
    content: bytes


def validate_image(image: Optional[UploadedImage], label: str, required: bool = True) -> Optional[UploadedImage]:
    """Contrôle présence, type et taille d'une image. Lève ValueError (→ 400)."""
    if image is None or not image.content:
        if required:
            raise ValueError(f"{label} est obligatoire.")
        return None
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValueError(f"{label} : format invalide (JPEG, PNG, WEBP ou HEIC attendu).")
    if len(image.content) > settings.MAX_IMAGE_SIZE_MB * 1024 * 1024:
        raise ValueError(f"{label} : taille maximale {settings.MAX_IMAGE_SIZE_MB} Mo.")
    return image


def submit_registration(
    db: Session,
    form: RegistrationForm,
    profile_image: Optional[UploadedImage],
    uploader: ImageUploader,
    payment_screenshot: Optional[UploadedImage] = None,
) -> Registration:
    """
    Crée une inscription. Lève :
    - ValueError / PaymentVerificationError → 400
    - DuplicateRegistrationError → 409
    - UpstreamFatalError (ou erreur d'upload après retries) → 500
    """
    profile_image = validate_image(profile_image, "La photo de profil")
    payment_screenshot = validate_image(payment_screenshot, "La capture de paiement", required=False)

    # 1. Doublon téléphone
    existing = registration_store.find_by_phone(db, form.phone)
    if existing is not None:
        logger.info("Inscription refusée : téléphone déjà inscrit (%s)", existing.registration_id)
        raise DuplicateRegistrationError(existing)

    # 2. Paiement
    payment_id = None
    if settings.PAYMENT_REQUIRED:
        payment_id = verify_payment_signature(
            form.razorpay_order_id, form.razorpay_payment_id, form.razorpay_signature,
        )

    # 3. Images
    image_url = uploader.upload(profile_image.content, profile_image.content_type, settings.S3_PROFILE_PREFIX)
    screenshot_url = None
    if payment_screenshot is not None:
        screenshot_url = uploader.upload(
            payment_screenshot.content, payment_screenshot.content_type, settings.S3_PAYMENT_PREFIX,
        )

    # 4. Écriture (needs_sync = true)
    registration = registration_store.create_registration(
        db,
        phone=form.phone,
        name=form.name,
        company=form.company,
        address=form.address,
        city=form.city,
        state=form.state,
        attendance_days=form.attendance_days,
        payment_id=payment_id,
        image_url=image_url,
        payment_screenshot_url=screenshot_url,
    )
    lookup_cache.invalidate(form.phone)
    return registration


def lookup_registration(db: Session, phone: str) -> Optional[RegistrationPublic]:
    """Recherche publique par téléphone (normalisé), avec cache court."""
    cached = lookup_cache.get(phone)
    if cached is not None:
        logger.debug("Cache hit pour la recherche %s", phone)
        return cached

    registration = registration_store.find_by_phone(db, phone)
    if registration is None:
        return None

    public = RegistrationPublic.model_validate(registration)
    lookup_cache.set(phone, public)
    return public


def registration_pass_png(registration_id: str) -> bytes:
    """Badge QR code (PNG) encodant l'identifiant, scanné au check-in."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(registration_id)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
