"""
Tests for shared/api/health.py

Covers 2 endpoints: read_root, database_health.
"""

import pytest
from unittest.mock import MagicMock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shared.api.health import router
from database import get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def app_and_client():
    """Build a test app with health router and mocked DB dependency."""
    app = FastAPI()
    app.include_router(router)

    mock_db = MagicMock()

    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    return app, client, mock_db


# ===========================================================================
# read_root
# ===========================================================================

class TestReadRoot:

    def test_health_check(self, app_and_client):
        _, client, _ = app_and_client
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "Recall Board Backend"
        assert data["version"] == "1.0.0"

    @patch("shared.api.health.get_settings")
    def test_reports_llm_config(self, mock_get_settings, app_and_client):
        _, client, _ = app_and_client
        mock_get_settings.return_value = MagicMock(llm_provider="anthropic", llm_model="claude-sonnet-4-5")

        data = client.get("/").json()
        assert data["llm"] == {"provider": "anthropic", "model": "claude-sonnet-4-5"}


# ===========================================================================
# database_health
# ===========================================================================

class TestDatabaseHealth:

    @patch("shared.api.health.get_db_manager")
    def test_healthy(self, mock_get_db_manager, app_and_client):
        _, client, _ = app_and_client
        mock_get_db_manager.return_value.health_check.return_value = True

        resp = client.get("/health/db")
        assert resp.json() == {"status": "ok", "database": "connected"}

    @patch("shared.api.health.get_db_manager")
    def test_unhealthy(self, mock_get_db_manager, app_and_client):
        _, client, _ = app_and_client
        mock_get_db_manager.return_value.health_check.return_value = False

        resp = client.get("/health/db")
        assert resp.json() == {"status": "error", "database": "connection_failed"}

    @patch("shared.api.health.get_db_manager")
    def test_exception(self, mock_get_db_manager, app_and_client):
        _, client, _ = app_and_client
        mock_get_db_manager.side_effect = RuntimeError("no pool")

        resp = client.get("/health/db")
        assert resp.json()["status"] == "error"
        assert "no pool" in resp.json()["database"]
