"""
Planificateur APScheduler pour la synchronisation BDD → Google Sheets.

Le job s'exécute toutes les SYNC_INTERVAL_MINUTES minutes et draine le lot
d'inscriptions needs_sync. max_instances=1 : jamais deux exécutions en parallèle
dans ce process ; le verrou consultatif couvre les autres process.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _sync_registrations_scheduled() -> None:
    """
    Tâche planifiée : synchro incrémentale du Google Sheet.
    Import local pour éviter les imports circulaires.
    """
    from app.services.reconciler import run_scheduled_sync

    report = run_scheduled_sync()
    if report is not None and not report.skipped and report.dirty_count:
        logger.info(
            "Synchro planifiée : %d mises à jour, %d ajouts",
            report.updated, report.appended,
        )


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    if not settings.SYNC_ENABLED:
        logger.info("Synchro planifiée désactivée (SYNC_ENABLED=false).")
        return
    scheduler.add_job(
        _sync_registrations_scheduled,
        trigger="interval",
        minutes=settings.SYNC_INTERVAL_MINUTES,
        id="sheets_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler démarré : synchro Google Sheets toutes les %d minutes.", settings.SYNC_INTERVAL_MINUTES)


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
