"""
Réconciliateur BDD → Google Sheets.

Synchronisation incrémentale (sync_dirty_registrations), une passe sans état :
  1. Lire le lot sale (needs_sync = true). Lot vide → aucun appel au Sheet.
  2. Lire la colonne Registration ID du Sheet → carte identifiant → ligne
  3. Classer chaque inscription : absente → ajout, présente → mise à jour en place
  4. Écrire par paquets (SYNC_CHUNK_SIZE) : mises à jour puis ajouts
  5. Remettre needs_sync à false pour TOUT le lot lu à l'étape 1, sauf les
     inscriptions modifiées depuis (sync_version différente) : elles restent sales

Une erreur aux étapes 2 à 4 interrompt l'exécution sans toucher aux drapeaux :
l'exécution suivante relit le même lot (au moins une fois, jamais au plus une fois).
Fenêtre connue : un ajout réussi suivi d'un crash avant l'étape 5 sera ajouté
une seconde fois à l'exécution suivante.

Reconstruction complète (rebuild_mirror) : efface le Sheet puis réécrit toutes
les inscriptions. Utilisée pour l'export forcé, pas pour la synchro fréquente.
"""

import logging
from typing import Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.schemas.sync import SyncReport
from app.services import registration_store
from app.services.errors import ReconciliationError, UpstreamFatalError
from app.services.sheets_client import MirrorStore, RowUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(values: Sequence[T], size: int) -> Iterable[List[T]]:
    """Découpe `values` en paquets d'au plus `size` éléments."""
    if size <= 0:
        raise ValueError("La taille de paquet doit être positive.")
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


def sync_dirty_registrations(
    db: Session,
    mirror: MirrorStore,
    chunk_size: Optional[int] = None,
) -> SyncReport:
    """Synchronise les inscriptions needs_sync = true vers le Sheet (upsert)."""
    chunk_size = chunk_size or settings.SYNC_CHUNK_SIZE

    # 1. Lot sale
    dirty = registration_store.list_dirty(db)
    if not dirty:
        logger.info("Synchro : aucune inscription à synchroniser.")
        return SyncReport(mode="delta")

    dirty_ids = [r.registration_id for r in dirty]
    versions = {r.registration_id: r.sync_version for r in dirty}
    logger.info("Synchro : %d inscriptions à synchroniser.", len(dirty))

    # 2. Carte identifiant → ligne
    try:
        sheet_index = mirror.read_key_index()
    except Exception as exc:
        logger.error("Synchro échouée à la lecture du Sheet : %s", exc, exc_info=True)
        raise ReconciliationError("lecture du Sheet", exc, dirty_ids) from exc
    logger.info("Synchro : %d lignes existantes dans le Sheet.", len(sheet_index))

    if not sheet_index:
        # Feuille vierge : l'en-tête occupe la ligne 1
        try:
            mirror.write_header()
        except Exception as exc:
            raise ReconciliationError("écriture de l'en-tête", exc, dirty_ids) from exc

    # 3. Classement ajout / mise à jour
    to_append: List[List[str]] = []
    append_ids: List[str] = []
    to_update: List[RowUpdate] = []
    update_ids: List[str] = []
    for registration in dirty:
        row = mirror.schema.format_row(registration)
        row_number = sheet_index.get(registration.registration_id)
        if row_number is None:
            to_append.append(row)
            append_ids.append(registration.registration_id)
        else:
            to_update.append(RowUpdate(row_number, row))
            update_ids.append(registration.registration_id)
    logger.info("Synchro : %d mises à jour, %d ajouts prévus.", len(to_update), len(to_append))

    # 4. Écritures par paquets : mises à jour d'abord, puis ajouts
    _write_chunks(
        "mise à jour", to_update, update_ids, chunk_size,
        lambda chunk, label, _start: mirror.batch_update_rows(chunk, label=label),
    )
    _write_chunks(
        "ajout", to_append, append_ids, chunk_size,
        lambda chunk, label, _start: mirror.append_rows(chunk, label=label),
    )

    # 5. Drapeaux : uniquement si toutes les écritures ont réussi
    try:
        cleared = registration_store.clear_dirty(db, versions)
    except Exception as exc:
        logger.error("Synchro : écritures faites mais drapeaux non remis à zéro : %s", exc, exc_info=True)
        raise ReconciliationError("remise à zéro des drapeaux", exc, dirty_ids) from exc

    logger.info(
        "Synchro terminée : %d mis à jour, %d ajoutés, %d drapeaux remis à zéro.",
        len(to_update), len(to_append), cleared,
    )
    return SyncReport(
        mode="delta",
        dirty_count=len(dirty),
        updated=len(to_update),
        appended=len(to_append),
        cleared=cleared,
    )


def _write_chunks(kind: str, items: Sequence, ids: Sequence[str], chunk_size: int, write) -> None:
    """
    Exécute write(paquet, libellé, position de départ) paquet par paquet ;
    la première erreur interrompt tout.
    """
    total = -(-len(items) // chunk_size)
    for number, chunk in enumerate(chunked(items, chunk_size), start=1):
        start = (number - 1) * chunk_size
        chunk_ids = ids[start:start + len(chunk)]
        label = f"{kind} paquet {number}/{total}"
        try:
            write(chunk, label, start)
        except Exception as exc:
            logger.error(
                "Synchro échouée (%s, %s → %s) : %s",
                label, chunk_ids[0], chunk_ids[-1], exc, exc_info=True,
            )
            raise ReconciliationError(label, exc, chunk_ids) from exc
        logger.info(" -> %s écrit (%d lignes).", label, len(chunk))


def rebuild_mirror(
    db: Session,
    mirror: MirrorStore,
    chunk_size: Optional[int] = None,
) -> SyncReport:
    """
    Reconstruction complète : efface le Sheet, ajuste la grille au nombre de
    lignes, réécrit l'en-tête puis toutes les inscriptions (ordre chronologique),
    et remet à zéro les drapeaux des inscriptions non modifiées entre-temps.
    """
    chunk_size = chunk_size or settings.SYNC_CHUNK_SIZE
    registrations = registration_store.list_all(db)
    ids = [r.registration_id for r in registrations]
    versions = {r.registration_id: r.sync_version for r in registrations}
    rows = [mirror.schema.format_row(r) for r in registrations]

    try:
        mirror.clear_data()
        # values.update n'agrandit pas la grille : en-tête + une ligne par inscription
        mirror.resize_rows(len(rows) + 1)
        mirror.write_header()
    except Exception as exc:
        logger.error("Reconstruction échouée à l'effacement du Sheet : %s", exc, exc_info=True)
        raise ReconciliationError("effacement du Sheet", exc, ids) from exc

    # Ligne 1 = en-tête, les données commencent ligne 2
    _write_chunks(
        "réécriture", rows, ids, chunk_size,
        lambda chunk, label, start: mirror.write_rows(chunk, start_row=start + 2, label=label),
    )

    try:
        cleared = registration_store.clear_dirty(db, versions)
    except Exception as exc:
        raise ReconciliationError("remise à zéro des drapeaux", exc, ids) from exc

    logger.info("Reconstruction terminée : %d lignes écrites.", len(rows))
    return SyncReport(mode="rebuild", dirty_count=len(ids), appended=len(rows), cleared=cleared)


def prune_orphan_rows(db: Session, mirror: MirrorStore) -> int:
    """
    Supprime du Sheet les lignes dont l'identifiant n'existe plus en base.
    Les suppressions sont appliquées de la dernière ligne vers la première.
    """
    known = set(registration_store.list_registration_ids(db))
    try:
        column = mirror.read_column(mirror.schema.key_column_letter())
        orphans = [
            position
            for position, value in enumerate(column, start=1)
            if position > 1 and str(value).strip() and str(value).strip() not in known
        ]
        if not orphans:
            return 0
        deleted = mirror.delete_rows(orphans)
    except Exception as exc:
        logger.error("Nettoyage des lignes orphelines échoué : %s", exc, exc_info=True)
        raise ReconciliationError("suppression des lignes orphelines", exc) from exc

    logger.info("%d lignes orphelines supprimées du Sheet.", deleted)
    return deleted


def run_scheduled_sync() -> Optional[SyncReport]:
    """
    Tâche planifiée : synchro incrémentale protégée par le verrou consultatif.
    Ignorée si une autre exécution détient le verrou ou si le Sheet n'est pas configuré.
    Import local pour éviter de construire le client Sheets à l'import du module.
    """
    from app.services.sheets_client import get_mirror_store

    db = SessionLocal()
    try:
        with registration_store.sync_lock() as acquired:
            if not acquired:
                logger.info("Synchro planifiée ignorée : une autre exécution est en cours.")
                return SyncReport(mode="delta", skipped=True)
            return sync_dirty_registrations(db, get_mirror_store())
    except UpstreamFatalError as exc:
        logger.error("Synchro planifiée impossible : %s", exc)
    except ReconciliationError as exc:
        logger.error("Synchro planifiée interrompue (%s), nouvel essai au prochain passage.", exc.stage)
    finally:
        db.close()
    return None
