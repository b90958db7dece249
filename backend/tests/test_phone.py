"""
Tests unitaires de la normalisation des numéros de mobile.
"""

import pytest

from app.services.phone import normalize_phone


@pytest.mark.parametrize("raw", [
    "9876543210",
    " 98765 43210 ",
    "98765-43210",
    "(987) 654-3210",
    "+91 98765 43210",
    "919876543210",
    "09876543210",
])
def test_formats_acceptes(raw):
    assert normalize_phone(raw) == "9876543210"


@pytest.mark.parametrize("raw", [
    "",
    "12345",
    "5876543210",        # un mobile commence par 6 à 9
    "98765432101",       # 11 chiffres sans 0 initial
    "98765abcde",
    "+44 7911 123456",
])
def test_formats_refuses(raw):
    with pytest.raises(ValueError, match="invalide"):
        normalize_phone(raw)


def test_telephone_absent():
    with pytest.raises(ValueError, match="obligatoire"):
        normalize_phone(None)
