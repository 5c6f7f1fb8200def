"""
Tests for backend/wealthtracker/services/host.py

Covers:
- StaticPermissions and the in-memory notifier
- DirectoryOutbox file delivery
- ApschedulerPeriodicSync job registration
"""

import os
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from wealthtracker.exceptions import ValidationError
from wealthtracker.schemas.export import ExportResult
from wealthtracker.services.host import (
    PERMISSION_DENIED,
    PERMISSION_GRANTED,
    PERMISSION_PROMPT,
    ApschedulerPeriodicSync,
    DirectoryOutbox,
    InMemoryNotifier,
    InMemoryOutbox,
    LoggingNotifier,
    StaticPermissions,
)


class TestPermissions:
    @pytest.mark.asyncio
    async def test_static_permissions(self):
        """Happy path: known states are returned, unknown ones are prompt."""
        permissions = StaticPermissions({"notifications": PERMISSION_DENIED})
        assert await permissions.query("notifications") == PERMISSION_DENIED
        assert await permissions.query("periodic-background-sync") == PERMISSION_PROMPT


class TestNotifiers:
    @pytest.mark.asyncio
    async def test_in_memory_notifier_records(self):
        notifier = InMemoryNotifier()
        await notifier.notify("Title", "Body", icon="/icon.png", tag="t")
        assert notifier.permission == PERMISSION_GRANTED
        assert notifier.sent[0].title == "Title"
        assert notifier.sent[0].tag == "t"

    @pytest.mark.asyncio
    async def test_logging_notifier(self, caplog):
        """Happy path: notifications land in the log."""
        with caplog.at_level("INFO"):
            await LoggingNotifier().notify("Backup Completed", "done", tag="backup-notification")
        assert "Backup Completed" in caplog.text


class TestOutboxes:
    @pytest.mark.asyncio
    async def test_directory_outbox_writes_file(self, tmp_path):
        """Happy path: the file is written under its generated name."""
        outbox = DirectoryOutbox(str(tmp_path / "reports"))
        result = ExportResult(content="a,b\n1,2", filename="export-2024-01-15.csv", mime_type="text/csv")

        path = await outbox.deliver(result, {})

        assert path == os.path.join(str(tmp_path / "reports"), "export-2024-01-15.csv")
        with open(path, "rb") as f:
            assert f.read() == b"a,b\n1,2"

    @pytest.mark.asyncio
    async def test_directory_outbox_never_overwrites(self, tmp_path):
        """Edge case: a second file with the same name gets a numbered suffix."""
        outbox = DirectoryOutbox(str(tmp_path))
        first = ExportResult(content="first", filename="report.csv", mime_type="text/csv")
        second = ExportResult(content="second", filename="report.csv", mime_type="text/csv")
        third = ExportResult(content="third", filename="report.csv", mime_type="text/csv")

        paths = [await outbox.deliver(r, {}) for r in (first, second, third)]

        assert [os.path.basename(p) for p in paths] == ["report.csv", "report-1.csv", "report-2.csv"]
        assert sorted(os.listdir(tmp_path)) == ["report-1.csv", "report-2.csv", "report.csv"]
        with open(paths[0], "rb") as f:
            assert f.read() == b"first"

    @pytest.mark.asyncio
    async def test_in_memory_outbox_copies_context(self):
        outbox = InMemoryOutbox()
        context = {"email": "me@example.com"}
        result = ExportResult(content=b"%PDF", filename="r.pdf", mime_type="application/pdf")
        assert await outbox.deliver(result, context) is None
        context["email"] = "changed"
        assert outbox.deliveries[0].context == {"email": "me@example.com"}


class TestApschedulerPeriodicSync:
    @pytest.mark.asyncio
    async def test_register_adds_interval_job(self):
        """Happy path: one interval job per tag; the scheduler is started once."""
        scheduler = MagicMock()
        scheduler.running = False
        sync = ApschedulerPeriodicSync(scheduler)
        callback = AsyncMock()

        await sync.register("automatic-backup", timedelta(days=1), callback)

        args, kwargs = scheduler.add_job.call_args
        assert args[0] is callback
        assert args[1].interval == timedelta(days=1)
        assert kwargs == {"id": "automatic-backup", "replace_existing": True}
        scheduler.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_invalid_interval(self):
        """Failure: non-positive intervals are rejected."""
        sync = ApschedulerPeriodicSync(MagicMock())
        with pytest.raises(ValidationError):
            await sync.register("x", timedelta(0), AsyncMock())

    @pytest.mark.asyncio
    async def test_unregister(self):
        """Happy path: only existing jobs are removed."""
        scheduler = MagicMock()
        scheduler.get_job.side_effect = lambda tag: object() if tag == "automatic-backup" else None
        sync = ApschedulerPeriodicSync(scheduler)

        await sync.unregister("automatic-backup")
        await sync.unregister("other")

        scheduler.remove_job.assert_called_once_with("automatic-backup")

    @pytest.mark.asyncio
    async def test_real_scheduler_lifecycle(self):
        """Happy path: a real AsyncIOScheduler starts on register and shuts down."""
        sync = ApschedulerPeriodicSync()
        await sync.register("automatic-backup", timedelta(hours=1), AsyncMock())
        assert sync.scheduler.get_job("automatic-backup") is not None
        await sync.unregister("automatic-backup")
        assert sync.scheduler.get_job("automatic-backup") is None
        sync.shutdown()
