"""
Schémas Pydantic pour la synchronisation BDD → Google Sheets.
Endpoints : POST /api/v1/admin/sync, POST /api/v1/admin/export/rebuild
"""

from pydantic import BaseModel


class SyncReport(BaseModel):
    """Rapport d'une exécution du réconciliateur."""

    mode: str                     # "delta" (lot sale) ou "rebuild" (réécriture complète)
    dirty_count: int = 0          # inscriptions lues avec needs_sync = true
    updated: int = 0              # lignes mises à jour en place
    appended: int = 0             # lignes ajoutées en fin de feuille
    deleted: int = 0              # lignes orphelines supprimées (prune)
    cleared: int = 0              # drapeaux needs_sync remis à false
    skipped: bool = False         # True si une autre exécution détenait le verrou
