"""
Backup Record Store

Local archive of backup files in the ``stored_backups`` table, indexed by
timestamp so retention pruning is a single range delete.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete as sql_delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from wealthtracker.exceptions import StorageError
from wealthtracker.models import StoredBackup

logger = logging.getLogger(__name__)


class BackupRecordStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, filename: str, format: str, data: bytes, timestamp: int) -> int:
        try:
            with self._session_factory() as session:
                record = StoredBackup(
                    filename=filename,
                    format=format,
                    data=data,
                    timestamp=timestamp,
                    cloud_synced=False,
                )
                session.add(record)
                session.commit()
                return record.id
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to store backup {filename}: {e}") from e

    def list(self) -> List[StoredBackup]:
        try:
            with self._session_factory() as session:
                stmt = select(StoredBackup).order_by(StoredBackup.timestamp.desc(), StoredBackup.id.desc())
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list backups: {e}") from e

    def get(self, backup_id: int) -> Optional[StoredBackup]:
        try:
            with self._session_factory() as session:
                return session.get(StoredBackup, backup_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read backup {backup_id}: {e}") from e

    def delete(self, backup_id: int) -> bool:
        try:
            with self._session_factory() as session:
                record = session.get(StoredBackup, backup_id)
                if not record:
                    return False
                session.delete(record)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete backup {backup_id}: {e}") from e

    def delete_older_than(self, cutoff_ms: int) -> int:
        """Delete every record with ``timestamp <= cutoff_ms``. Returns the count removed."""
        try:
            with self._session_factory() as session:
                result = session.execute(sql_delete(StoredBackup).where(StoredBackup.timestamp <= cutoff_ms))
                session.commit()
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to prune backups: {e}") from e
        if removed:
            logger.info(f"Pruned {removed} backup(s) older than {cutoff_ms}")
        return removed
