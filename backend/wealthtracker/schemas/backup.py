"""Automatic backup schemas."""

from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from wealthtracker.schemas.finance import CamelModel


class BackupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BackupFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    ALL = "all"


class CloudProvider(str, Enum):
    GOOGLE_DRIVE = "google-drive"
    DROPBOX = "dropbox"
    ONEDRIVE = "onedrive"


class BackupConfig(CamelModel):
    enabled: bool = False
    frequency: BackupFrequency = BackupFrequency.DAILY
    time: str = "02:00"
    format: BackupFormat = BackupFormat.JSON
    encryption_enabled: bool = True
    cloud_provider: Optional[CloudProvider] = None
    retention_days: int = Field(default=30, ge=1)
    include_attachments: bool = False

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("time must be HH:MM")
        if int(parts[0]) > 23 or int(parts[1]) > 59:
            raise ValueError("time must be HH:MM")
        return v


class BackupHistoryEntry(CamelModel):
    timestamp: int  # epoch milliseconds
    success: bool
    format: Optional[BackupFormat] = None
    files_created: Optional[int] = None
    error: Optional[str] = None


class StoredBackupInfo(CamelModel):
    id: int
    filename: str
    format: str
    timestamp: int
    size: int
    cloud_synced: bool
