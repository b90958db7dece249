"""
Accès au stockage de référence des inscriptions (table registrations).

Contrats utilisés par le réconciliateur :
- list_dirty  : inscriptions needs_sync = true, plus anciennes d'abord
- clear_dirty : remise à false en UN seul UPDATE + commit (tout ou rien),
  limitée aux lignes dont sync_version n'a pas changé depuis la lecture
- toute mutation destinée au Google Sheet repasse needs_sync à true
  et incrémente sync_version
"""

import logging
import secrets
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Mapping, Optional

from sqlalchemy import func, or_, select, text, tuple_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import engine
from app.models.registration import Registration
from app.schemas.admin import StatsResponse
from app.services.errors import DuplicateRegistrationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
MAX_ID_ATTEMPTS = 5


def generate_registration_id() -> str:
    """Génère un identifiant lisible (format : TDEXPOUP-XXXXXXXX)."""
    return f"{settings.REGISTRATION_ID_PREFIX}-{secrets.token_hex(4).upper()}"


def _is_phone_violation(exc: IntegrityError) -> bool:
    """Vrai si la violation d'unicité porte sur le téléphone (et non sur registration_id)."""
    diag = getattr(getattr(exc, "orig", None), "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint:
        return "phone" in constraint
    return "phone" in str(exc.orig if exc.orig is not None else exc)


def create_registration(db: Session, **fields) -> Registration:
    """
    Insère une inscription (needs_sync = true) et la retourne complète.

    - Téléphone déjà présent → DuplicateRegistrationError portant l'existant
    - Collision (improbable) sur registration_id → nouvel identifiant, MAX_ID_ATTEMPTS essais
    """
    for attempt in range(MAX_ID_ATTEMPTS):
        registration = Registration(
            registration_id=generate_registration_id(),
            timestamp=datetime.now(timezone.utc),
            needs_sync=True,
            sync_version=1,
            **fields,
        )
        db.add(registration)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _is_phone_violation(exc):
                existing = find_by_phone(db, fields["phone"])
                raise DuplicateRegistrationError(existing) from exc
            logger.warning(
                "Collision registration_id %s (essai %d/%d)",
                registration.registration_id, attempt + 1, MAX_ID_ATTEMPTS,
            )
            continue

        db.refresh(registration)
        logger.info("Inscription créée : %s", registration.registration_id)
        return registration

    raise RuntimeError("Impossible de générer un identifiant d'inscription unique.")


def find_by_phone(db: Session, phone: str) -> Optional[Registration]:
    """Retourne l'inscription associée au téléphone (déjà normalisé), ou None."""
    return db.execute(
        select(Registration).where(Registration.phone == phone)
    ).scalar_one_or_none()


def find_by_registration_id(db: Session, registration_id: str) -> Optional[Registration]:
    """Retourne l'inscription par son identifiant (insensible à la casse), ou None."""
    return db.execute(
        select(Registration).where(Registration.registration_id == registration_id.strip().upper())
    ).scalar_one_or_none()


def search(
    db: Session,
    phone: Optional[str] = None,
    registration_id: Optional[str] = None,
) -> List[Registration]:
    """Recherche admin : téléphone OU identifiant, plus récentes d'abord."""
    conditions = []
    if phone:
        conditions.append(Registration.phone == phone)
    if registration_id:
        conditions.append(Registration.registration_id == registration_id.strip().upper())
    if not conditions:
        return []

    return db.execute(
        select(Registration)
        .where(or_(*conditions))
        .order_by(Registration.timestamp.desc())
    ).scalars().all()


def list_dirty(db: Session) -> List[Registration]:
    """Inscriptions à synchroniser, plus anciennes d'abord."""
    return db.execute(
        select(Registration)
        .where(Registration.needs_sync.is_(True))
        .order_by(Registration.timestamp.asc())
    ).scalars().all()


def list_all(db: Session) -> List[Registration]:
    """Toutes les inscriptions, plus anciennes d'abord (reconstruction complète, export)."""
    return db.execute(
        select(Registration).order_by(Registration.timestamp.asc())
    ).scalars().all()


def list_registration_ids(db: Session) -> List[str]:
    """Identifiants de toutes les inscriptions (détection des lignes orphelines du Sheet)."""
    return db.execute(select(Registration.registration_id)).scalars().all()


def clear_dirty(db: Session, versions: Mapping[str, int]) -> int:
    """
    Remet needs_sync à false pour les inscriptions lues par le réconciliateur,
    uniquement si leur sync_version n'a pas bougé depuis cette lecture.
    Une inscription modifiée entre-temps (check-in pendant l'écriture du Sheet)
    reste sale et sera reprise au passage suivant.

    `versions` : identifiant → sync_version lue dans list_dirty / list_all.
    Un seul UPDATE commité : en cas d'échec, aucun drapeau n'est modifié.
    Retourne le nombre de drapeaux effectivement remis à zéro.
    """
    pairs = list(versions.items())
    if not pairs:
        return 0

    try:
        result = db.execute(
            update(Registration)
            .where(tuple_(Registration.registration_id, Registration.sync_version).in_(pairs))
            .values(needs_sync=False)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    cleared = result.rowcount
    if cleared < len(pairs):
        logger.info(
            "%d inscriptions modifiées pendant la synchro, laissées à synchroniser",
            len(pairs) - cleared,
        )
    logger.info("%d inscriptions marquées comme synchronisées", cleared)
    return cleared


def set_checked_in(db: Session, registration_id: str, checked_in: bool) -> Optional[Registration]:
    """
    Marque (ou annule) le check-in d'une inscription et la repasse en needs_sync.
    Retourne l'inscription mise à jour, ou None si introuvable.
    """
    registration = find_by_registration_id(db, registration_id)
    if registration is None:
        return None

    registration.checked_in_at = datetime.now(timezone.utc) if checked_in else None
    registration.needs_sync = True
    # Incrément côté SQL : deux mutations concurrentes donnent deux versions distinctes
    registration.sync_version = Registration.sync_version + 1
    db.commit()
    db.refresh(registration)

    logger.info(
        "Check-in %s pour %s",
        "enregistré" if checked_in else "annulé", registration.registration_id,
    )
    return registration


def list_page(db: Session, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE):
    """
    Retourne (inscriptions, total, page, page_size, total_pages).
    La page demandée est ramenée dans [1, total_pages].
    """
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    total = db.execute(select(func.count()).select_from(Registration)).scalar() or 0
    total_pages = max(1, -(-total // page_size))
    page = min(max(page, 1), total_pages)

    rows = db.execute(
        select(Registration)
        .order_by(Registration.timestamp.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    ).scalars().all()

    return rows, total, page, page_size, total_pages


def get_stats(db: Session) -> StatsResponse:
    """Compteurs du tableau de bord en une seule requête."""
    row = db.execute(
        select(
            func.count(Registration.id),
            func.count(Registration.checked_in_at),
            func.count(Registration.id).filter(Registration.needs_sync.is_(True)),
            func.max(Registration.timestamp),
        )
    ).one()

    return StatsResponse(
        total_registrations=row[0] or 0,
        checked_in=row[1] or 0,
        pending_sync=row[2] or 0,
        last_registration_time=row[3],
    )


@contextmanager
def sync_lock(key: Optional[int] = None, bind=None) -> Iterator[bool]:
    """
    Verrou consultatif PostgreSQL empêchant deux synchronisations simultanées.

    Tenu sur une connexion dédiée : chaque commit de la session de travail
    rend sa connexion au pool, un verrou pris via la session serait perdu.
    Fournit True si le verrou est obtenu ; il est toujours relâché en sortie.
    """
    key = settings.SYNC_LOCK_KEY if key is None else key
    with (bind or engine).connect() as conn:
        acquired = bool(
            conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar()
        )
        try:
            yield acquired
        finally:
            if acquired:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                conn.commit()
