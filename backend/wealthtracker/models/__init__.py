"""ORM models for the local persistence layer."""

from wealthtracker.models.storage import KeyValueEntry, StoredBackup

__all__ = [
    "KeyValueEntry",
    "StoredBackup",
]
