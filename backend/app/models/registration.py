"""
Modèle SQLAlchemy pour la table registrations.

- phone : clé métier, unique (normalisée avant insertion)
- registration_id : identifiant lisible généré à la création, unique et immuable
- needs_sync : drapeau "sale" : la ligne du Google Sheet est absente ou périmée.
  Mis à True à la création et à chaque mutation, remis à False uniquement
  par le réconciliateur après une écriture confirmée.
- sync_version : compteur de mutations. Le réconciliateur ne remet needs_sync
  à False que si la version n'a pas changé depuis sa lecture du lot.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, func

from app.database import Base


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_id = Column(String(32), unique=True, nullable=False)
    phone = Column(String(10), unique=True, nullable=False)

    name = Column(String(200), nullable=False)
    company = Column(String(200), nullable=False)
    address = Column(Text, nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    attendance_days = Column(String(100), nullable=False)

    payment_id = Column(String(100), nullable=True)          # Null si le paiement n'est pas exigé
    image_url = Column(String(500), nullable=False)           # Photo de profil (immuable)
    payment_screenshot_url = Column(String(500), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    needs_sync = Column(Boolean, nullable=False, default=True, server_default="true")
    sync_version = Column(Integer, nullable=False, default=1, server_default="1")  # +1 à chaque mutation

    __table_args__ = (
        # Lecture du lot "sale" par le réconciliateur, plus ancien d'abord
        Index("ix_registrations_needs_sync_timestamp", "needs_sync", "timestamp"),
    )
