"""
Tests unitaires de la vérification de signature Razorpay.
"""

import pytest

from app.services.errors import PaymentVerificationError, UpstreamFatalError
from app.services.payment import expected_signature, verify_payment_signature

SECRET = "rzp_test_secret"


def test_signature_valide():
    signature = expected_signature("order_1", "pay_1", SECRET)
    assert verify_payment_signature("order_1", "pay_1", signature, secret=SECRET) == "pay_1"


def test_signature_connue():
    """HMAC-SHA256 hexadécimal de "order_1|pay_1"."""
    signature = expected_signature("order_1", "pay_1", SECRET)
    assert len(signature) == 64
    assert signature == signature.lower()


def test_signature_invalide():
    with pytest.raises(PaymentVerificationError, match="invalide"):
        verify_payment_signature("order_1", "pay_1", "0" * 64, secret=SECRET)


def test_signature_d_une_autre_commande():
    signature = expected_signature("order_2", "pay_1", SECRET)
    with pytest.raises(PaymentVerificationError):
        verify_payment_signature("order_1", "pay_1", signature, secret=SECRET)


@pytest.mark.parametrize("order_id,payment_id,signature", [
    (None, "pay_1", "sig"),
    ("order_1", "", "sig"),
    ("order_1", "pay_1", None),
])
def test_informations_manquantes(order_id, payment_id, signature):
    with pytest.raises(PaymentVerificationError, match="manquantes"):
        verify_payment_signature(order_id, payment_id, signature, secret=SECRET)


def test_secret_non_configure():
    with pytest.raises(UpstreamFatalError):
        verify_payment_signature("order_1", "pay_1", "sig", secret="")
