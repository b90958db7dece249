"""
Point d'entrée principal de l'API d'inscription au salon.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401  (enregistre tous les modèles dans Base.metadata avant les routers)
from app.config import settings
from app.logging_config import setup_logging
from app.routers import admin, registrations
from app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_SECRET = "change-me-in-production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : logging, puis démarrage/arrêt du scheduler APScheduler."""
    setup_logging()
    if settings.ENV == "production" and settings.ADMIN_SECRET_KEY == DEFAULT_ADMIN_SECRET:
        logger.warning("ADMIN_SECRET_KEY a sa valeur par défaut : endpoints admin non protégés.")
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="Expo Registration API",
    description="Inscriptions au salon, check-in et synchronisation Google Sheets",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Admin-Key"],
)


app.include_router(registrations.router)
app.include_router(admin.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées : message générique côté client,
    détail complet dans les logs serveur uniquement.
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Expo Registration API", "version": "0.1.0"}
