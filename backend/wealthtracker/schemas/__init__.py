from wealthtracker.schemas.backup import (
    BackupConfig,
    BackupFormat,
    BackupFrequency,
    BackupHistoryEntry,
    CloudProvider,
    StoredBackupInfo,
)
from wealthtracker.schemas.export import (
    ExportFormat,
    ExportOptions,
    ExportResult,
    ExportTemplate,
    Frequency,
    GroupBy,
    ScheduledReport,
)
from wealthtracker.schemas.finance import (
    Account,
    Budget,
    CamelModel,
    Category,
    FinancialData,
    Goal,
    Investment,
    Transaction,
)
from wealthtracker.schemas.reporting import (
    ComponentType,
    CustomReport,
    DateRangeType,
    DeliveryFormat,
    ReportComponent,
    ReportFilters,
    ReportHistoryEntry,
    ScheduledCustomReport,
)

__all__ = [
    "Account",
    "BackupConfig",
    "BackupFormat",
    "BackupFrequency",
    "BackupHistoryEntry",
    "Budget",
    "CamelModel",
    "Category",
    "CloudProvider",
    "ComponentType",
    "CustomReport",
    "DateRangeType",
    "DeliveryFormat",
    "ExportFormat",
    "ExportOptions",
    "ExportResult",
    "ExportTemplate",
    "FinancialData",
    "Frequency",
    "Goal",
    "GroupBy",
    "Investment",
    "ReportComponent",
    "ReportFilters",
    "ReportHistoryEntry",
    "ScheduledCustomReport",
    "ScheduledReport",
    "StoredBackupInfo",
    "Transaction",
]
