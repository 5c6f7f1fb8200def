from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (key-value entries + stored backup archives)
    database_url: str = "sqlite:///./wealthtracker.db"

    # Reported in backup bundles as app_version
    app_version: str = "1.4.7"

    # Polling periods (seconds)
    report_check_interval_seconds: int = 60
    export_check_interval_seconds: int = 60
    backup_check_interval_seconds: int = 3600  # Fallback backup timer: hourly

    # Ring-buffer history sizes
    report_history_limit: int = 50
    backup_history_limit: int = 30

    # Simple scheduled exports are pinned to this hour of day
    default_report_hour: int = 9

    # Directory that generated report files are written to (empty = keep in memory)
    report_output_dir: str = ""

    # Base64 AES-256 key for backup encryption. Empty = fresh key per backup.
    backup_encryption_key: str = ""

    # Host notification contract
    notification_icon: str = "/icon-192.png"

    # API
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("backup_encryption_key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        """Tolerate keys pasted with surrounding whitespace/newlines"""
        return v.strip() if v else v

    @property
    def output_dir(self) -> Optional[str]:
        return self.report_output_dir or None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
