"""
Normalisation des numéros de mobile (clé métier des inscriptions).
"""

import re

MOBILE_REGEX = re.compile(r"^[6-9]\d{9}$")
_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(raw: str) -> str:
    """
    Retourne le numéro sous forme canonique à 10 chiffres.
    Accepte les séparateurs usuels et un préfixe +91 / 91 / 0.
    Lève ValueError si le numéro n'est pas un mobile indien valide.
    """
    if raw is None:
        raise ValueError("Le numéro de téléphone est obligatoire.")

    digits = _SEPARATORS.sub("", raw.strip())
    if digits.startswith("+91"):
        digits = digits[3:]
    elif len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]

    if not MOBILE_REGEX.match(digits):
        raise ValueError("Numéro de mobile invalide : 10 chiffres attendus.")
    return digits
