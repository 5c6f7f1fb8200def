"""
Tests for backend/wealthtracker/routers/exports_router.py

Covers:
- POST /api/exports file downloads and domain error mapping
- POST /api/exports/report full report downloads
- template CRUD endpoints
- scheduled export endpoints including send-now
"""

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from wealthtracker.exceptions import AppError
from wealthtracker.main import app_error_handler
from wealthtracker.routers import exports_router
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.export_store import ExportScheduler, ExportStore
from wealthtracker.services.host import InMemoryOutbox

OPTIONS = {"startDate": "2024-01-01T00:00:00Z", "endDate": "2024-01-31T23:59:59Z", "format": "csv"}


@pytest.fixture
def outbox():
    return InMemoryOutbox()


@pytest.fixture
def client(kv_store, clock, sample_data, outbox):
    builder = MagicMock()
    builder.output.return_value = b"%PDF-mock"

    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(exports_router.router)

    app.state.export_service = ExportService(clock=clock, builder_factory=lambda: builder)
    app.state.export_store = ExportStore(kv_store, clock=clock)
    app.state.export_scheduler = ExportScheduler(
        app.state.export_store, app.state.export_service, lambda: sample_data, outbox
    )
    return TestClient(app)


class TestExportEndpoint:
    def test_csv_download(self, client, sample_data):
        """Happy path: the export comes back as an attachment."""
        response = client.post("/api/exports", json={"data": sample_data.to_storage(), "options": OPTIONS})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="export-2024-01-15.csv"'
        assert response.text.startswith("id,date,amount")

    def test_pdf_download(self, client, sample_data):
        response = client.post(
            "/api/exports", json={"data": sample_data.to_storage(), "options": {**OPTIONS, "format": "pdf"}}
        )
        assert response.status_code == 200
        assert response.content == b"%PDF-mock"

    def test_missing_data_is_400(self, client, sample_data):
        """Failure: QIF without accounts maps to a 400 with the message."""
        data = {"transactions": sample_data.to_storage()["transactions"]}
        response = client.post("/api/exports", json={"data": data, "options": {**OPTIONS, "format": "qif"}})
        assert response.status_code == 400
        assert "account" in response.json()["detail"].lower()

    def test_invalid_format_is_422(self, client):
        """Failure: unknown formats fail request validation."""
        response = client.post("/api/exports", json={"data": {}, "options": {**OPTIONS, "format": "docx"}})
        assert response.status_code == 422


class TestReportEndpoint:
    def test_csv_report_download(self, client, sample_data):
        """Happy path: the full report is served under its title."""
        options = {**OPTIONS, "customTitle": "January Review"}
        response = client.post("/api/exports/report", json={"data": sample_data.to_storage(), "options": options})
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="January_Review.csv"'
        lines = response.text.split("\n")
        assert lines[0] == "January Review"
        assert "SUMMARY" in lines

    def test_pdf_report_download(self, client, sample_data):
        response = client.post(
            "/api/exports/report", json={"data": sample_data.to_storage(), "options": {**OPTIONS, "format": "pdf"}}
        )
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Financial_Report.pdf"'
        assert response.content == b"%PDF-mock"

    def test_unsupported_format_is_400(self, client, sample_data):
        """Failure: formats without a report rendering are rejected."""
        response = client.post(
            "/api/exports/report", json={"data": sample_data.to_storage(), "options": {**OPTIONS, "format": "qif"}}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported report format: qif"


class TestTemplateEndpoints:
    def test_list_defaults(self, client):
        response = client.get("/api/exports/templates")
        assert [t["id"] for t in response.json()] == [
            "investment-portfolio", "monthly-summary", "transaction-report",
        ]

    def test_crud(self, client):
        """Happy path: create, read, update and delete a template."""
        created = client.post("/api/exports/templates", json={"name": "Mine", "options": OPTIONS}).json()
        assert created["isDefault"] is False

        fetched = client.get(f"/api/exports/templates/{created['id']}").json()
        assert fetched["name"] == "Mine"

        updated = client.put(f"/api/exports/templates/{created['id']}", json={"description": "Jan"}).json()
        assert updated["description"] == "Jan"

        assert client.delete(f"/api/exports/templates/{created['id']}").json() == {"detail": "Template deleted"}
        assert client.get(f"/api/exports/templates/{created['id']}").status_code == 404

    def test_unknown_template(self, client):
        """Failure: unknown ids are 404 for every verb."""
        assert client.get("/api/exports/templates/nope").status_code == 404
        assert client.put("/api/exports/templates/nope", json={"name": "x"}).status_code == 404
        assert client.delete("/api/exports/templates/nope").status_code == 404


class TestScheduledExportEndpoints:
    def _create(self, client, **fields):
        body = {"name": "Weekly", "frequency": "weekly", "options": OPTIONS, "email": "me@example.com"}
        body.update(fields)
        return client.post("/api/exports/scheduled", json=body).json()

    def test_create_and_list(self, client):
        """Happy path: next run one week out at the report hour."""
        created = self._create(client)
        assert created["nextRun"] == "2024-01-22T09:00:00Z"
        assert [r["id"] for r in client.get("/api/exports/scheduled").json()] == [created["id"]]
        assert client.get("/api/exports/scheduled/due").json() == []

    def test_update_frequency(self, client):
        created = self._create(client)
        updated = client.put(f"/api/exports/scheduled/{created['id']}", json={"frequency": "daily"}).json()
        assert updated["nextRun"] == "2024-01-16T09:00:00Z"

    def test_update_invalid_frequency(self, client):
        """Failure: invalid values are rejected with 422."""
        created = self._create(client)
        response = client.put(f"/api/exports/scheduled/{created['id']}", json={"frequency": "hourly"})
        assert response.status_code == 422

    def test_send_now(self, client, outbox):
        """Happy path: delivered to the outbox and lastRun stamped."""
        created = self._create(client)
        body = client.post(f"/api/exports/scheduled/{created['id']}/send").json()
        assert body["sent"] is True
        assert body["report"]["lastRun"] == "2024-01-15T12:00:00Z"
        assert outbox.deliveries[0].context["email"] == "me@example.com"

    def test_send_paused(self, client):
        """Failure: paused schedules cannot be sent."""
        created = self._create(client, isActive=False)
        response = client.post(f"/api/exports/scheduled/{created['id']}/send")
        assert response.status_code == 400
        assert response.json()["detail"] == "Scheduled export is paused"

    def test_delete(self, client):
        created = self._create(client)
        assert client.delete(f"/api/exports/scheduled/{created['id']}").status_code == 200
        assert client.get(f"/api/exports/scheduled/{created['id']}").status_code == 404
        assert client.post(f"/api/exports/scheduled/{created['id']}/send").status_code == 404
