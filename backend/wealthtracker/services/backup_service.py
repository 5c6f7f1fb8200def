"""
Automatic Backup Service

Snapshots the client's persisted records into JSON (optionally AES-GCM
encrypted) and/or CSV archives on a daily, weekly or monthly cadence.

Scheduling prefers the host's periodic background sync; when that is not
available or not permitted, a fallback task checks hourly whether the next
backup time has passed.
"""

import asyncio
import base64
import binascii
import json
import logging
import os
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from dateutil.relativedelta import relativedelta
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.config import settings
from wealthtracker.constants import (
    BACKUP_CONFIG_KEY,
    BACKUP_ENTITY_KEYS,
    BACKUP_HISTORY_KEY,
    ENTITY_KEY_PREFIX,
)
from wealthtracker.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from wealthtracker.schemas.backup import (
    BackupConfig,
    BackupFormat,
    BackupFrequency,
    BackupHistoryEntry,
    StoredBackupInfo,
)
from wealthtracker.schemas.export import ExportFormat, ExportOptions
from wealthtracker.schemas.finance import FinancialData
from wealthtracker.services.backup_storage import BackupRecordStore
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.host import (
    PERMISSION_GRANTED,
    Notifier,
    PeriodicSync,
    PermissionsQuery,
)
from wealthtracker.services.key_value_store import KeyValueStore, load_json, save_json
from wealthtracker.timeutils import Clock, date_stamp, ensure_utc, from_epoch_ms, iso_z, to_epoch_ms, utcnow

logger = logging.getLogger(__name__)

BACKUP_VERSION = "2.0"
PERIODIC_SYNC_TAG = "automatic-backup"
PERIODIC_SYNC_PERMISSION = "periodic-background-sync"
NOTIFICATION_TAG = "backup-notification"
IV_LENGTH = 12

_MIN_INTERVALS = {
    BackupFrequency.DAILY: timedelta(days=1),
    BackupFrequency.WEEKLY: timedelta(days=7),
    BackupFrequency.MONTHLY: timedelta(days=30),
}

_ADVANCE = {
    BackupFrequency.DAILY: relativedelta(days=1),
    BackupFrequency.WEEKLY: relativedelta(days=7),
    BackupFrequency.MONTHLY: relativedelta(months=1),
}


def calculate_next_backup_time(last_backup_ms: int, config: BackupConfig) -> int:
    """
    Next backup time (epoch ms) after the last successful backup.

    The configured time of day is applied to the last backup's date; if
    that is not after the last backup, one period is added.
    """
    hours, minutes = (int(part) for part in config.time.split(":"))
    last = from_epoch_ms(last_backup_ms)
    next_backup = last.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if next_backup <= last:
        next_backup += _ADVANCE[BackupFrequency(config.frequency)]
    return to_epoch_ms(next_backup)


def load_encryption_key(encoded: str) -> bytes:
    """Decode a base64 AES key (16, 24 or 32 bytes)."""
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Backup encryption key is not valid base64: {e}") from e
    if len(key) not in (16, 24, 32):
        raise ValidationError("Backup encryption key must be 128, 192 or 256 bits")
    return key


def encrypt_backup(plaintext: str, key: bytes) -> str:
    """AES-GCM encrypt; the 12-byte IV is prepended and the result base64 encoded."""
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return base64.b64encode(iv + ciphertext).decode("ascii")


def decrypt_backup(payload: str, key: bytes) -> str:
    combined = base64.b64decode(payload)
    iv, ciphertext = combined[:IV_LENGTH], combined[IV_LENGTH:]
    return AESGCM(key).decrypt(iv, ciphertext, None).decode("utf-8")


class AutomaticBackupService:
    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        backup_store: Optional[BackupRecordStore] = None,
        export_service: Optional[ExportService] = None,
        notifier: Optional[Notifier] = None,
        permissions: Optional[PermissionsQuery] = None,
        periodic_sync: Optional[PeriodicSync] = None,
        clock: Optional[Clock] = None,
        encryption_key: Optional[bytes] = None,
        history_limit: Optional[int] = None,
        check_interval_seconds: Optional[int] = None,
    ):
        self.storage = storage
        self.backup_store = backup_store
        self._clock = clock or utcnow
        self.export_service = export_service or ExportService(clock=self._clock)
        self.notifier = notifier
        self.permissions = permissions
        self.periodic_sync = periodic_sync
        self._encryption_key = encryption_key
        self.history_limit = history_limit or settings.backup_history_limit
        self.check_interval_seconds = check_interval_seconds or settings.backup_check_interval_seconds

        self.periodic_sync_registered = False
        self.running = False
        self.task: Optional[asyncio.Task] = None

    def _now_ms(self) -> int:
        return to_epoch_ms(self._clock())

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_backup_config(self) -> BackupConfig:
        raw = load_json(self.storage, BACKUP_CONFIG_KEY, None)
        if raw is None:
            return BackupConfig()
        try:
            return BackupConfig.model_validate(raw)
        except PydanticValidationError as e:
            logger.error(f"Failed to parse backup config, using defaults: {e}")
            return BackupConfig()

    async def update_backup_config(self, updates: Dict[str, Any]) -> BackupConfig:
        """Merge ``updates`` into the stored config; re-initializes when ``enabled`` changes."""
        config = self.get_backup_config().merged(updates, protected=())
        save_json(self.storage, BACKUP_CONFIG_KEY, config.to_storage())

        if any(BackupConfig.field_name(key) == "enabled" for key in updates):
            await self.initialize()
        return config

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        config = self.get_backup_config()
        if not config.enabled:
            logger.info("Automatic backups disabled")
            await self._clear_fallback()
            await self._unregister_periodic_sync()
            return

        if self.periodic_sync is not None and self.permissions is not None:
            try:
                await self._require_periodic_sync_permission()
                await self._register_periodic_sync(config)
                await self._clear_fallback()
                return
            except PermissionDeniedError as e:
                logger.info(f"{e}, using fallback timer")
            except Exception as e:
                logger.error(f"Failed to set up periodic sync: {e}", exc_info=True)

        await self._setup_fallback()

    async def _require_periodic_sync_permission(self) -> None:
        state = await self.permissions.query(PERIODIC_SYNC_PERMISSION)
        if state != PERMISSION_GRANTED:
            raise PermissionDeniedError(f"Periodic sync permission not granted ({state})")

    async def _register_periodic_sync(self, config: BackupConfig) -> None:
        min_interval = _MIN_INTERVALS.get(BackupFrequency(config.frequency), timedelta(days=1))
        await self.periodic_sync.register(PERIODIC_SYNC_TAG, min_interval, self.perform_backup)
        self.periodic_sync_registered = True
        logger.info(f"Periodic backup sync registered (every {min_interval})")

    async def _unregister_periodic_sync(self) -> None:
        if not self.periodic_sync_registered or self.periodic_sync is None:
            return
        try:
            await self.periodic_sync.unregister(PERIODIC_SYNC_TAG)
        except Exception as e:
            logger.warning(f"Failed to unregister periodic backup sync: {e}")
        self.periodic_sync_registered = False

    def get_last_backup_time(self) -> int:
        """Epoch ms of the newest successful backup, 0 when there is none."""
        successful = [h.timestamp for h in self.get_backup_history() if h.success]
        return max(successful) if successful else 0

    def next_backup_time(self) -> int:
        return calculate_next_backup_time(self.get_last_backup_time(), self.get_backup_config())

    async def check_due_backup(self) -> bool:
        """Run a backup if the next backup time has passed."""
        if self._now_ms() >= self.next_backup_time():
            return await self.perform_backup()
        return False

    async def _setup_fallback(self) -> None:
        await self._clear_fallback()
        await self.check_due_backup()

        self.running = True
        self.task = asyncio.create_task(self.run_loop())
        logger.info(f"Backup fallback timer started - checking every {self.check_interval_seconds}s")

    async def _clear_fallback(self) -> None:
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

    async def run_loop(self):
        while self.running:
            await asyncio.sleep(self.check_interval_seconds)
            try:
                await self.check_due_backup()
            except Exception as e:
                logger.error(f"Error in backup fallback loop: {e}", exc_info=True)

    async def destroy(self) -> None:
        await self._clear_fallback()
        await self._unregister_periodic_sync()
        logger.info("Automatic backup service stopped")

    # ------------------------------------------------------------------
    # Backup run
    # ------------------------------------------------------------------

    async def perform_backup(self) -> bool:
        """
        Run one backup with the current config.

        Returns True on success. Failures are logged, recorded in the
        history and reported through a notification; they are not raised.
        """
        config = self.get_backup_config()
        if not config.enabled:
            return False

        try:
            logger.info("Starting backup...")
            bundle = self.collect_backup_data()

            files: List[Tuple[str, str, bytes]] = []
            if config.format in (BackupFormat.JSON, BackupFormat.ALL):
                files.append(self.create_json_backup(bundle, config))
            if config.format in (BackupFormat.CSV, BackupFormat.ALL):
                files.append(self.create_csv_backup(bundle))

            self.store_backups(files, config)
            self._add_to_history(BackupHistoryEntry(
                timestamp=self._now_ms(),
                success=True,
                format=config.format,
                files_created=len(files),
            ))
        except Exception as e:
            logger.error(f"Backup failed: {e}", exc_info=True)
            self._add_to_history(BackupHistoryEntry(
                timestamp=self._now_ms(),
                success=False,
                error=str(e) or "Unknown error",
            ))
            await self._send_notification(False, str(e) or "Unknown error")
            return False

        # Archives are stored by now; a failed prune does not fail the run
        try:
            self.cleanup_old_backups(config.retention_days)
        except Exception as e:
            logger.warning(f"Failed to remove old backups: {e}")

        await self._send_notification(True)
        logger.info("Backup completed successfully")
        return True

    def collect_backup_data(self) -> Dict[str, Any]:
        bundle: Dict[str, Any] = {
            "version": BACKUP_VERSION,
            "timestamp": iso_z(self._clock()),
            "app_version": settings.app_version,
        }
        if self.storage is None:
            return bundle

        for key in BACKUP_ENTITY_KEYS:
            value = self.storage.get_item(key)
            if not value:
                continue
            try:
                bundle[key[len(ENTITY_KEY_PREFIX):]] = json.loads(value)
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse {key}, leaving it out of the backup: {e}")
        return bundle

    def _backup_filename(self, ext: str) -> str:
        return f"wealthtracker-backup-{date_stamp(self._clock())}.{ext}"

    def _get_encryption_key(self) -> bytes:
        if self._encryption_key is None:
            if settings.backup_encryption_key:
                self._encryption_key = load_encryption_key(settings.backup_encryption_key)
            else:
                logger.warning(
                    "No backup encryption key configured; using a one-off key. "
                    "Encrypted backups from this run cannot be restored."
                )
                return AESGCM.generate_key(bit_length=256)
        return self._encryption_key

    def create_json_backup(self, bundle: Dict[str, Any], config: BackupConfig) -> Tuple[str, str, bytes]:
        payload = json.dumps(bundle, indent=2)
        if config.encryption_enabled:
            payload = encrypt_backup(payload, self._get_encryption_key())
        return BackupFormat.JSON.value, self._backup_filename("json"), payload.encode("utf-8")

    def create_csv_backup(self, bundle: Dict[str, Any]) -> Tuple[str, str, bytes]:
        data = FinancialData.model_validate({
            "transactions": bundle.get("transactions") or [],
            "accounts": bundle.get("accounts") or [],
            "investments": bundle.get("investments") or [],
            "budgets": bundle.get("budgets") or [],
        })
        options = ExportOptions(
            start_date=from_epoch_ms(0),
            end_date=ensure_utc(self._clock()),
            format=ExportFormat.CSV,
            include_charts=False,
            include_transactions=True,
            include_accounts=True,
            include_investments=True,
            include_budgets=True,
        )
        result = self.export_service.export_data(data, options)
        return BackupFormat.CSV.value, self._backup_filename("csv"), result.data

    def store_backups(self, files: List[Tuple[str, str, bytes]], config: BackupConfig) -> None:
        if self.backup_store is None:
            logger.warning("No backup store configured; backup files were not kept")
        else:
            timestamp = self._now_ms()
            for backup_format, filename, data in files:
                self.backup_store.add(filename, backup_format, data, timestamp)

        if config.cloud_provider:
            # Cloud upload is not implemented; files stay local
            logger.info(f"Would sync {len(files)} files to {config.cloud_provider.value}")

    def cleanup_old_backups(self, retention_days: int) -> int:
        if self.backup_store is None:
            return 0
        cutoff = self._now_ms() - retention_days * 24 * 60 * 60 * 1000
        removed = self.backup_store.delete_older_than(cutoff)
        if removed:
            logger.info(f"Removed {removed} backup(s) older than {retention_days} days")
        return removed

    async def _send_notification(self, success: bool, error: Optional[str] = None) -> None:
        if self.notifier is None or self.notifier.permission != PERMISSION_GRANTED:
            return
        title = "Backup Completed" if success else "Backup Failed"
        body = (
            "Your financial data has been backed up successfully."
            if success
            else f"Backup failed: {error or 'Unknown error'}"
        )
        try:
            await self.notifier.notify(title, body, icon=settings.notification_icon, tag=NOTIFICATION_TAG)
        except Exception as e:
            logger.warning(f"Failed to send backup notification: {e}")

    # ------------------------------------------------------------------
    # History and stored archives
    # ------------------------------------------------------------------

    def get_backup_history(self) -> List[BackupHistoryEntry]:
        raw = load_json(self.storage, BACKUP_HISTORY_KEY, [])
        history = []
        for item in raw if isinstance(raw, list) else []:
            try:
                history.append(BackupHistoryEntry.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable backup history entry: {e}")
        return history

    def _add_to_history(self, entry: BackupHistoryEntry) -> None:
        history = [entry] + self.get_backup_history()
        save_json(
            self.storage,
            BACKUP_HISTORY_KEY,
            [h.to_storage() for h in history[: self.history_limit]],
        )

    def get_stored_backups(self) -> List[StoredBackupInfo]:
        if self.backup_store is None:
            return []
        return [
            StoredBackupInfo(
                id=record.id,
                filename=record.filename,
                format=record.format,
                timestamp=record.timestamp,
                size=len(record.data),
                cloud_synced=bool(record.cloud_synced),
            )
            for record in self.backup_store.list()
        ]

    def download_backup(self, backup_id: int) -> Tuple[str, bytes]:
        record = self.backup_store.get(backup_id) if self.backup_store is not None else None
        if record is None:
            raise NotFoundError(f"Backup {backup_id} not found")
        return record.filename, record.data

    def delete_backup(self, backup_id: int) -> bool:
        if self.backup_store is None:
            return False
        return self.backup_store.delete(backup_id)
