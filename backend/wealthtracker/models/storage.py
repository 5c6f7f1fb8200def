"""Storage models: key-value entries and stored backup archives."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    LargeBinary,
    String,
    Text,
)

from wealthtracker.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """
    One entry of the persistent key-value store.

    Mirrors the browser's localStorage contract: string keys, JSON string
    values. Keys are the stable storage-key constants in constants.py.
    """
    __tablename__ = "key_value_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class StoredBackup(Base):
    """
    A backup archive kept locally until it ages past the retention window.

    One row per file produced by a backup run (a run in "all" format
    produces both a JSON and a CSV row).
    """
    __tablename__ = "stored_backups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    format = Column(String(16), nullable=False, index=True)
    data = Column(LargeBinary, nullable=False)
    timestamp = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds
    cloud_synced = Column(Boolean, nullable=False, default=False)
