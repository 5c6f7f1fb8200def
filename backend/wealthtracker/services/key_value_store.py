"""
Key-Value Store

String-keyed JSON storage shared by the template, schedule, report and
backup services. Mirrors the browser's localStorage contract so the stored
payloads stay wire-compatible with the client.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from wealthtracker.exceptions import StorageError
from wealthtracker.models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract persistent key-value store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the ``key_value_entries`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def set_item(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry:
                    entry.value = value
                else:
                    session.add(KeyValueEntry(key=key, value=value))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove '{key}': {e}") from e

    def keys(self) -> List[str]:
        try:
            with self._session_factory() as session:
                return list(session.scalars(select(KeyValueEntry.key)))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list keys: {e}") from e


def load_json(store: Optional[KeyValueStore], key: str, default: Any = None) -> Any:
    """
    Read and parse a JSON value.

    Persistence is best-effort: a missing store, a missing key, a storage
    failure or unparseable JSON all yield ``default`` (failures are logged).
    """
    if store is None:
        return default
    try:
        raw = store.get_item(key)
    except StorageError as e:
        logger.error(f"Error loading {key}: {e}")
        return default
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.error(f"Error parsing {key}: {e}")
        return default


def save_json(store: Optional[KeyValueStore], key: str, value: Any) -> bool:
    """Serialize and write a JSON value. Returns False if nothing was persisted."""
    if store is None:
        return False
    try:
        store.set_item(key, json.dumps(value))
        return True
    except (StorageError, TypeError, ValueError) as e:
        logger.error(f"Error saving {key}: {e}")
        return False
