"""
Export schemas

Options, templates and simple scheduled exports as persisted under the
``export-templates`` and ``scheduled-reports`` storage keys.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from wealthtracker.schemas.finance import CamelModel


class ExportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"
    XLSX = "xlsx"
    JSON = "json"
    QIF = "qif"
    OFX = "ofx"


class GroupBy(str, Enum):
    CATEGORY = "category"
    ACCOUNT = "account"
    MONTH = "month"
    NONE = "none"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ExportOptions(CamelModel):
    """Options for a single export call. Immutable once built."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    start_date: datetime
    end_date: datetime
    format: ExportFormat = ExportFormat.PDF
    include_charts: bool = False
    include_transactions: bool = True
    include_accounts: bool = True
    include_investments: bool = False
    include_budgets: bool = False
    group_by: Optional[GroupBy] = None
    custom_title: Optional[str] = None
    logo_url: Optional[str] = None


class ExportTemplate(CamelModel):
    id: str
    name: str
    description: str = ""
    options: ExportOptions
    is_default: bool = False
    created_at: datetime


class ScheduledReport(CamelModel):
    """A simple recurring export delivered by e-mail."""

    id: str
    name: str
    frequency: Frequency
    email: str = ""
    options: ExportOptions
    next_run: datetime
    is_active: bool = True
    created_at: datetime
    last_run: Optional[datetime] = None


class ExportResult(CamelModel):
    """Generated payload plus the filename and MIME type to serve it under."""

    content: Union[bytes, str]
    filename: str
    mime_type: str

    @property
    def data(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")
