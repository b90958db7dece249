# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant la création du schéma (Base.metadata.create_all) ou les migrations.

from app.models.registration import Registration  # noqa: F401
