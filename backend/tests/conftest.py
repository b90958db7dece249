"""
Configuration partagée pour tous les tests.
Override des dépendances get_db, Google Sheets et S3 pour éviter toute
connexion réelle à PostgreSQL ou aux services externes.
"""

import os

# Avant l'import de l'application : pas de scheduler, clé admin connue
os.environ["SYNC_ENABLED"] = "false"
os.environ["ADMIN_SECRET_KEY"] = "test-admin-key"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.routers import admin  # noqa: E402
from app.services import registration_service  # noqa: E402
from app.services.image_storage import get_image_uploader  # noqa: E402

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def mock_uploader():
    uploader = MagicMock()
    uploader.upload.return_value = "https://cdn.example.com/expo-profile-images/photo.jpg"
    return uploader


@pytest.fixture
def mock_mirror():
    return MagicMock()


@pytest.fixture
def client(mock_db, mock_uploader, mock_mirror):
    """Client HTTP de test avec la BDD, S3 et le Google Sheet mockés."""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_image_uploader] = lambda: mock_uploader
    app.dependency_overrides[admin.mirror_store] = lambda: mock_mirror
    admin.stats_cache.invalidate()
    registration_service.lookup_cache.invalidate()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)
