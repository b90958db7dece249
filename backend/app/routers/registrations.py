"""
Router public des inscriptions.
POST /api/v1/registrations                         : soumission du formulaire (multipart)
GET  /api/v1/registrations/lookup?phone=           : retrouver son inscription
GET  /api/v1/registrations/{registration_id}/pass.png : badge QR code
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.registration import RegistrationConflict, RegistrationForm, RegistrationPublic
from app.services import registration_service, registration_store
from app.services.errors import (
    DuplicateRegistrationError,
    PaymentVerificationError,
    UpstreamFatalError,
)
from app.services.image_storage import ImageUploader, get_image_uploader
from app.services.phone import normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/registrations", tags=["Inscriptions"])

GENERIC_ERROR = "Impossible d'enregistrer l'inscription pour le moment. Veuillez réessayer."


async def _read_image(file: Optional[UploadFile]) -> Optional[registration_service.UploadedImage]:
    if file is None or not file.filename:
        return None
    return registration_service.UploadedImage(
        filename=file.filename,
        content_type=file.content_type or "",
        content=await file.read(),
    )


def _conflict(existing) -> JSONResponse:
    body = RegistrationConflict(
        detail="Ce numéro de téléphone est déjà inscrit.",
        registration=RegistrationPublic.model_validate(existing),
    )
    return JSONResponse(status_code=409, content=body.model_dump())


@router.post(
    "",
    response_model=RegistrationPublic,
    responses={409: {"model": RegistrationConflict}},
    summary="Soumettre une inscription",
)
async def submit_registration(
    name: str = Form(""),
    phone: str = Form(""),
    company: str = Form(""),
    address: str = Form(""),
    city: str = Form(""),
    state: str = Form(""),
    attendance_days: str = Form(""),
    razorpay_order_id: Optional[str] = Form(None),
    razorpay_payment_id: Optional[str] = Form(None),
    razorpay_signature: Optional[str] = Form(None),
    profile_image: Optional[UploadFile] = File(None),
    payment_screenshot: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    uploader: ImageUploader = Depends(get_image_uploader),
):
    """
    Enregistre une inscription depuis le formulaire multipart.

    - 200 : inscription créée (champs publics)
    - 400 : champ manquant/invalide, photo absente, paiement invalide
    - 409 : téléphone déjà inscrit : l'inscription existante est renvoyée
    - 500 : service externe indisponible (message générique)
    """
    try:
        form = RegistrationForm(
            name=name, phone=phone, company=company, address=address, city=city, state=state,
            attendance_days=attendance_days, razorpay_order_id=razorpay_order_id,
            razorpay_payment_id=razorpay_payment_id, razorpay_signature=razorpay_signature,
        )
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise HTTPException(status_code=400, detail=f"Champs invalides ou manquants : {', '.join(fields)}")

    try:
        registration = registration_service.submit_registration(
            db,
            form,
            await _read_image(profile_image),
            uploader,
            payment_screenshot=await _read_image(payment_screenshot),
        )
    except DuplicateRegistrationError as e:
        return _conflict(e.existing)
    except (PaymentVerificationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamFatalError as e:
        logger.error("Inscription échouée (service externe) : %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    return RegistrationPublic.model_validate(registration)


@router.get("/lookup", response_model=RegistrationPublic, summary="Retrouver son inscription")
def lookup_registration(phone: str = Query(""), db: Session = Depends(get_db)):
    """Retourne l'inscription associée à un numéro de mobile (10 chiffres)."""
    try:
        normalized = normalize_phone(phone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    registration = registration_service.lookup_registration(db, normalized)
    if registration is None:
        raise HTTPException(status_code=404, detail="Aucune inscription pour ce numéro.")
    return registration


@router.get(
    "/{registration_id}/pass.png",
    response_class=Response,
    summary="Badge QR code d'une inscription",
)
def registration_pass(registration_id: str, db: Session = Depends(get_db)):
    """Image PNG du QR code encodant l'identifiant, présentée à l'entrée."""
    registration = registration_store.find_by_registration_id(db, registration_id)
    if registration is None:
        raise HTTPException(status_code=404, detail="Inscription introuvable.")
    png = registration_service.registration_pass_png(registration.registration_id)
    return Response(content=png, media_type="image/png")
