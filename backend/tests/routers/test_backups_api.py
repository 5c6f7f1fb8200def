"""
Tests for backend/wealthtracker/routers/backup_router.py

Covers:
- config read/update
- manual runs, history and the stored archive endpoints
"""

import json

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from fastapi import FastAPI
from fastapi.testclient import TestClient

from wealthtracker.exceptions import AppError
from wealthtracker.main import app_error_handler
from wealthtracker.routers import backup_router
from wealthtracker.services.backup_service import AutomaticBackupService
from wealthtracker.services.backup_storage import BackupRecordStore


@pytest.fixture
def client(kv_store, clock, session_factory):
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(backup_router.router)

    app.state.backup_service = AutomaticBackupService(
        kv_store,
        backup_store=BackupRecordStore(session_factory),
        clock=clock,
        encryption_key=AESGCM.generate_key(bit_length=256),
    )
    return TestClient(app)


def _enable(client, **fields):
    # Enabling re-initializes the service; keep the fallback timer out of the way
    client.app.state.backup_service.initialize = _noop
    return client.patch("/api/backups/config", json={"enabled": True, "encryptionEnabled": False, **fields})


async def _noop():
    return None


class TestBackupConfigEndpoints:
    def test_defaults(self, client):
        config = client.get("/api/backups/config").json()
        assert config["enabled"] is False
        assert config["frequency"] == "daily"
        assert config["retentionDays"] == 30

    def test_patch(self, client):
        """Happy path: partial update persisted in camelCase."""
        response = client.patch("/api/backups/config", json={"retentionDays": 7, "format": "all"})
        assert response.status_code == 200
        assert client.get("/api/backups/config").json()["retentionDays"] == 7

    def test_patch_invalid(self, client):
        """Failure: invalid values are rejected with 422."""
        assert client.patch("/api/backups/config", json={"time": "2am"}).status_code == 422
        assert client.patch("/api/backups/config", json={"retentionDays": 0}).status_code == 422


class TestBackupRunEndpoints:
    def test_run_disabled(self, client):
        """Failure: manual runs need backups enabled."""
        response = client.post("/api/backups/run")
        assert response.status_code == 400
        assert response.json()["detail"] == "Automatic backups are disabled"

    def test_run_list_download_delete(self, client, kv_store):
        """Happy path: run, list, download and delete an archive."""
        kv_store.set_item("money_management_accounts", json.dumps([{"id": "a1", "name": "Checking"}]))
        _enable(client)

        assert client.post("/api/backups/run").json() == {"success": True}

        listed = client.get("/api/backups").json()
        assert len(listed) == 1
        backup = listed[0]
        assert backup["filename"] == "wealthtracker-backup-2024-01-15.json"

        download = client.get(f"/api/backups/{backup['id']}/download")
        assert download.status_code == 200
        assert download.headers["content-type"].startswith("application/json")
        assert download.headers["content-disposition"] == (
            'attachment; filename="wealthtracker-backup-2024-01-15.json"'
        )
        assert download.json()["accounts"][0]["name"] == "Checking"

        history = client.get("/api/backups/history").json()
        assert history[0]["success"] is True
        assert history[0]["filesCreated"] == 1

        assert client.delete(f"/api/backups/{backup['id']}").json() == {"detail": "Backup deleted"}
        assert client.get("/api/backups").json() == []

    def test_missing_backup(self, client):
        """Failure: unknown archives are 404."""
        assert client.get("/api/backups/999/download").status_code == 404
        assert client.delete("/api/backups/999").status_code == 404
