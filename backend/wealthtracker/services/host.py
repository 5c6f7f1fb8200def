"""
Host Capabilities

Narrow interfaces over the environment the schedulers run in: user-facing
notifications, permission queries, periodic background wake-ups and the
sink that receives generated report files. Each has a real implementation
and an in-memory one for tests.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wealthtracker.exceptions import ValidationError
from wealthtracker.schemas.export import ExportResult

logger = logging.getLogger(__name__)

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_DEFAULT = "default"
PERMISSION_PROMPT = "prompt"


# ----------------------------------------------------------------------------
# Notifications
# ----------------------------------------------------------------------------

@dataclass
class Notification:
    title: str
    body: str
    icon: Optional[str] = None
    tag: Optional[str] = None


class Notifier(ABC):
    """Shows local notifications to the user."""

    @property
    @abstractmethod
    def permission(self) -> str:
        """One of ``granted``, ``denied`` or ``default``."""

    @abstractmethod
    async def notify(self, title: str, body: str, icon: Optional[str] = None, tag: Optional[str] = None) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes notifications to the application log."""

    @property
    def permission(self) -> str:
        return PERMISSION_GRANTED

    async def notify(self, title: str, body: str, icon: Optional[str] = None, tag: Optional[str] = None) -> None:
        logger.info(f"Notification [{tag or 'general'}] {title}: {body}")


class InMemoryNotifier(Notifier):
    def __init__(self, permission: str = PERMISSION_GRANTED):
        self._permission = permission
        self.sent: List[Notification] = []

    @property
    def permission(self) -> str:
        return self._permission

    async def notify(self, title: str, body: str, icon: Optional[str] = None, tag: Optional[str] = None) -> None:
        self.sent.append(Notification(title=title, body=body, icon=icon, tag=tag))


# ----------------------------------------------------------------------------
# Permissions
# ----------------------------------------------------------------------------

class PermissionsQuery(ABC):
    @abstractmethod
    async def query(self, name: str) -> str:
        """Return the permission state for ``name`` (granted, denied or prompt)."""


class StaticPermissions(PermissionsQuery):
    """Answers from a fixed mapping; unknown permissions are ``prompt``."""

    def __init__(self, states: Optional[Dict[str, str]] = None):
        self._states = dict(states or {})

    async def query(self, name: str) -> str:
        return self._states.get(name, PERMISSION_PROMPT)


# ----------------------------------------------------------------------------
# Periodic background wake-up
# ----------------------------------------------------------------------------

class PeriodicSync(ABC):
    """Registers callbacks the host wakes up at a minimum interval."""

    @abstractmethod
    async def register(self, tag: str, min_interval: timedelta, callback: Callable[[], Awaitable[Any]]) -> None:
        pass

    @abstractmethod
    async def unregister(self, tag: str) -> None:
        pass


class ApschedulerPeriodicSync(PeriodicSync):
    """Periodic wake-ups as interval jobs on an APScheduler ``AsyncIOScheduler``."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()

    async def register(self, tag: str, min_interval: timedelta, callback: Callable[[], Awaitable[Any]]) -> None:
        if min_interval.total_seconds() <= 0:
            raise ValidationError(f"Invalid periodic sync interval for {tag}")
        self.scheduler.add_job(
            callback,
            IntervalTrigger(seconds=int(min_interval.total_seconds())),
            id=tag,
            replace_existing=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Periodic sync '{tag}' registered every {min_interval}")

    async def unregister(self, tag: str) -> None:
        if self.scheduler.get_job(tag):
            self.scheduler.remove_job(tag)
            logger.info(f"Periodic sync '{tag}' unregistered")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


# ----------------------------------------------------------------------------
# Report delivery
# ----------------------------------------------------------------------------

class ReportOutbox(ABC):
    """Receives generated files (the server-side stand-in for a download)."""

    @abstractmethod
    async def deliver(self, result: ExportResult, context: Dict[str, Any]) -> Optional[str]:
        """Deliver ``result``; returns a location for it when one exists."""


class DirectoryOutbox(ReportOutbox):
    def __init__(self, directory: str):
        self.directory = directory

    async def deliver(self, result: ExportResult, context: Dict[str, Any]) -> Optional[str]:
        """Write the file; an existing name gets a -1, -2, ... suffix instead of being replaced."""
        os.makedirs(self.directory, exist_ok=True)
        stem, ext = os.path.splitext(result.filename)
        filename = result.filename
        suffix = 0
        while True:
            path = os.path.join(self.directory, filename)
            try:
                with open(path, "xb") as f:
                    f.write(result.data)
                break
            except FileExistsError:
                suffix += 1
                filename = f"{stem}-{suffix}{ext}"
        logger.info(f"Wrote {filename} ({len(result.data)} bytes) to {self.directory}")
        return path


@dataclass
class Delivery:
    result: ExportResult
    context: Dict[str, Any] = field(default_factory=dict)


class InMemoryOutbox(ReportOutbox):
    def __init__(self):
        self.deliveries: List[Delivery] = []

    async def deliver(self, result: ExportResult, context: Dict[str, Any]) -> Optional[str]:
        self.deliveries.append(Delivery(result=result, context=dict(context)))
        return None
