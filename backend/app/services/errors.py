"""
Exceptions métier partagées par les services.
Les routers les traduisent en HTTPException (400, 409, 500).
"""

from typing import Optional, Sequence


class DuplicateRegistrationError(ValueError):
    """Le téléphone est déjà inscrit. `existing` porte l'inscription en place."""

    def __init__(self, existing):
        super().__init__("Ce numéro de téléphone est déjà inscrit.")
        self.existing = existing


class PaymentVerificationError(ValueError):
    """Signature de paiement absente ou invalide."""


class UpstreamFatalError(Exception):
    """Échec définitif d'un service externe (identifiants, requête rejetée)."""


class ReconciliationError(Exception):
    """
    Échec d'une exécution du réconciliateur.
    Les drapeaux needs_sync n'ont pas été modifiés : la prochaine exécution
    relira le même lot.
    """

    def __init__(self, stage: str, cause: Exception, registration_ids: Optional[Sequence[str]] = None):
        super().__init__(f"Synchronisation interrompue ({stage}) : {cause}")
        self.stage = stage
        self.cause = cause
        self.registration_ids = list(registration_ids or [])
