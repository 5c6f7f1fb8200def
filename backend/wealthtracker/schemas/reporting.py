"""
Custom report schemas

Report definitions built by the user, the schedules that run them and the
run history kept under ``money_management_report_history``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from wealthtracker.schemas.export import Frequency
from wealthtracker.schemas.finance import CamelModel


class DeliveryFormat(str, Enum):
    PDF = "pdf"
    CSV = "csv"
    EMAIL = "email"


class DateRangeType(str, Enum):
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"


class ComponentType(str, Enum):
    SUMMARY_STATS = "summary-stats"
    LINE_CHART = "line-chart"
    PIE_CHART = "pie-chart"
    BAR_CHART = "bar-chart"
    TABLE = "table"
    TEXT_BLOCK = "text-block"
    CATEGORY_BREAKDOWN = "category-breakdown"
    DATE_COMPARISON = "date-comparison"


class ReportFilters(CamelModel):
    date_range: DateRangeType = DateRangeType.MONTH
    custom_start_date: Optional[str] = None
    custom_end_date: Optional[str] = None
    accounts: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ReportComponent(CamelModel):
    id: str
    type: ComponentType
    # Free-form per component type (title, limit, sortBy, metrics, content...)
    config: Dict[str, Any] = Field(default_factory=dict)


class CustomReport(CamelModel):
    id: str
    name: str
    description: str = ""
    components: List[ReportComponent] = Field(default_factory=list)
    filters: ReportFilters = Field(default_factory=ReportFilters)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScheduledCustomReport(CamelModel):
    """A recurring run of a saved custom report."""

    id: str
    custom_report_id: str
    report_name: str
    frequency: Frequency
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    time: str = "09:00"
    delivery_format: DeliveryFormat = DeliveryFormat.PDF
    email_recipients: List[str] = Field(default_factory=list)
    enabled: bool = True
    next_run: datetime
    last_run: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("time must be HH:MM")
        hours, minutes = int(parts[0]), int(parts[1])
        if hours > 23 or minutes > 59:
            raise ValueError("time must be HH:MM")
        return f"{hours:02d}:{minutes:02d}"


class ReportHistoryEntry(CamelModel):
    report_id: str
    report_name: str
    run_time: datetime
    success: bool
    format: Optional[str] = None
    error: Optional[str] = None
