"""
Vérification de la signature de paiement Razorpay.
signature attendue = HMAC-SHA256(RAZORPAY_KEY_SECRET, "<order_id>|<payment_id>") en hexadécimal.
"""

import hashlib
import hmac
import logging
from typing import Optional

from app.config import settings
from app.services.errors import PaymentVerificationError, UpstreamFatalError

logger = logging.getLogger(__name__)


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    secret: Optional[str] = None,
) -> str:
    """
    Vérifie la signature transmise par le checkout Razorpay.
    Retourne le payment_id validé ; lève PaymentVerificationError sinon.
    """
    secret = secret if secret is not None else settings.RAZORPAY_KEY_SECRET
    if not secret:
        raise UpstreamFatalError("RAZORPAY_KEY_SECRET n'est pas configuré.")

    if not order_id or not payment_id or not signature:
        raise PaymentVerificationError("Informations de paiement manquantes.")

    if not hmac.compare_digest(expected_signature(order_id, payment_id, secret), signature):
        logger.warning("Signature de paiement invalide pour la commande %s", order_id)
        raise PaymentVerificationError("Signature de paiement invalide.")

    return payment_id
