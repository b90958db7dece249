"""
Router d'administration (header X-Admin-Key obligatoire).
Statistiques, recherche, liste paginée, check-in / annulation,
synchronisation Google Sheets et export CSV.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.dependencies import is_admin_secret, require_admin_key
from app.schemas.admin import CheckInRequest, StatsResponse, UndoCheckInRequest
from app.schemas.registration import RegistrationAdmin, RegistrationPage
from app.schemas.sync import SyncReport
from app.services import export_service, reconciler, registration_store
from app.services.cache import TTLCache
from app.services.errors import ReconciliationError, UpstreamFatalError
from app.services.phone import normalize_phone
from app.services.sheets_client import MirrorStore, get_mirror_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["Administration"],
    dependencies=[Depends(require_admin_key)],
)

stats_cache = TTLCache(settings.STATS_CACHE_SECONDS)


def mirror_store() -> MirrorStore:
    """Handle du Sheet ; 500 explicite si la configuration Google est absente."""
    try:
        return get_mirror_store()
    except UpstreamFatalError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats", response_model=StatsResponse, summary="Statistiques des inscriptions")
def get_stats(db: Session = Depends(get_db)):
    """Total, check-ins, inscriptions en attente de synchro, dernière inscription (cache court)."""
    cached = stats_cache.get("stats")
    if cached is not None:
        return cached
    stats = registration_store.get_stats(db)
    stats_cache.set("stats", stats)
    return stats


@router.get("/search", response_model=List[RegistrationAdmin], summary="Rechercher une inscription")
def search_registrations(
    phone: Optional[str] = Query(None),
    registration_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Recherche par téléphone et/ou identifiant d'inscription (OU logique)."""
    phone = phone.strip() if phone else None
    registration_id = registration_id.strip() if registration_id else None
    if not phone and not registration_id:
        raise HTTPException(status_code=400, detail="Fournir un téléphone ou un identifiant d'inscription.")

    if phone:
        try:
            phone = normalize_phone(phone)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    results = registration_store.search(db, phone=phone, registration_id=registration_id)
    if not results:
        raise HTTPException(status_code=404, detail="Aucune inscription trouvée.")
    return results


@router.get("/registrations", response_model=RegistrationPage, summary="Lister les inscriptions")
def list_registrations(
    page: int = Query(1),
    limit: int = Query(registration_store.DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Liste paginée, plus récentes d'abord (limit plafonné à 100)."""
    rows, total, page, page_size, total_pages = registration_store.list_page(db, page, limit)
    return RegistrationPage(
        results=[RegistrationAdmin.model_validate(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.post("/check-in", response_model=RegistrationAdmin, summary="Enregistrer l'arrivée")
def check_in(data: CheckInRequest, db: Session = Depends(get_db)):
    """Horodate l'arrivée du participant ; la ligne du Sheet sera mise à jour à la prochaine synchro."""
    registration = registration_store.set_checked_in(db, data.registration_id, checked_in=True)
    if registration is None:
        raise HTTPException(status_code=404, detail="Inscription introuvable.")
    stats_cache.invalidate()
    return registration


@router.post("/undo-check-in", response_model=RegistrationAdmin, summary="Annuler un check-in")
def undo_check_in(data: UndoCheckInRequest, db: Session = Depends(get_db)):
    """Efface checked_in_at. Le mot de passe admin doit être ressaisi (second facteur)."""
    if not is_admin_secret(data.password):
        raise HTTPException(status_code=403, detail="Mot de passe incorrect : annulation refusée.")

    registration = registration_store.set_checked_in(db, data.registration_id, checked_in=False)
    if registration is None:
        raise HTTPException(status_code=404, detail="Inscription introuvable.")
    stats_cache.invalidate()
    return registration


def _run_locked(job):
    with registration_store.sync_lock() as acquired:
        if not acquired:
            raise HTTPException(status_code=409, detail="Une synchronisation est déjà en cours.")
        try:
            return job()
        except ReconciliationError as e:
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "Échec de la synchronisation.",
                    "stage": e.stage,
                    "cause": str(e.cause),
                    "registration_ids": e.registration_ids[:20],
                },
            )


@router.post("/sync", response_model=SyncReport, summary="Synchroniser le Google Sheet (incrémental)")
def sync_now(
    prune: bool = Query(False),
    db: Session = Depends(get_db),
    mirror: MirrorStore = Depends(mirror_store),
):
    """
    Lance immédiatement le réconciliateur sur les inscriptions needs_sync.
    prune=true supprime en plus les lignes du Sheet sans inscription correspondante.
    """
    def job():
        report = reconciler.sync_dirty_registrations(db, mirror)
        if prune:
            report.deleted = reconciler.prune_orphan_rows(db, mirror)
        return report

    return _run_locked(job)


@router.post("/export/rebuild", response_model=SyncReport, summary="Reconstruire entièrement le Google Sheet")
def rebuild_sheet(db: Session = Depends(get_db), mirror: MirrorStore = Depends(mirror_store)):
    """Efface le Sheet puis réécrit toutes les inscriptions depuis la base."""
    return _run_locked(lambda: reconciler.rebuild_mirror(db, mirror))


@router.get("/export.csv", summary="Exporter les inscriptions en CSV")
def export_csv(db: Session = Depends(get_db)):
    """Téléchargement CSV de toutes les inscriptions (UTF-8 BOM, compatible Excel)."""
    csv_content = export_service.export_registrations_csv(db)
    return StreamingResponse(
        iter([csv_content]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={export_service.export_filename()}"},
    )
