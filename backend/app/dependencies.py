"""
Dépendances FastAPI partagées par les routers.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from app.config import settings


def is_admin_secret(value: Optional[str]) -> bool:
    """Comparaison à temps constant avec ADMIN_SECRET_KEY."""
    if not value or not settings.ADMIN_SECRET_KEY:
        return False
    return hmac.compare_digest(value.encode("utf-8"), settings.ADMIN_SECRET_KEY.encode("utf-8"))


def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    """Rejette (401) toute requête admin sans header X-Admin-Key valide."""
    if not is_admin_secret(x_admin_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Clé d'administration absente ou invalide.",
        )
