"""
Application Constants

Storage keys shared with the browser client's persistent key-value store,
plus fixed mappings used by the export formats.
"""

from typing import Dict, List

# Simple export schedules and templates
SCHEDULED_REPORTS_KEY = "scheduled-reports"
EXPORT_TEMPLATES_KEY = "export-templates"

# Custom reports and their schedules
CUSTOM_REPORTS_KEY = "money_management_custom_reports"
SCHEDULED_CUSTOM_REPORTS_KEY = "money_management_scheduled_custom_reports"
REPORT_HISTORY_KEY = "money_management_report_history"

# Automatic backups
BACKUP_CONFIG_KEY = "money_management_backup_config"
BACKUP_HISTORY_KEY = "money_management_backup_history"

ENTITY_KEY_PREFIX = "money_management_"

# Keys copied verbatim into every backup bundle (order preserved)
BACKUP_ENTITY_KEYS: List[str] = [
    "money_management_transactions",
    "money_management_accounts",
    "money_management_categories",
    "money_management_tags",
    "money_management_budgets",
    "money_management_goals",
    "money_management_investments",
    "money_management_recurring_transactions",
    "money_management_preferences",
    "money_management_import_profiles",
    "money_management_import_rules",
    "money_management_scheduled_reports",
]

# Account type -> QIF account type
QIF_ACCOUNT_TYPES: Dict[str, str] = {
    "current": "Bank",
    "checking": "Bank",
    "savings": "Bank",
    "credit": "CCard",
    "loan": "Liability",
    "investment": "Investment",
    "other": "Bank",
}

# Account type -> OFX ACCTTYPE
OFX_ACCOUNT_TYPES: Dict[str, str] = {
    "current": "CHECKING",
    "checking": "CHECKING",
    "savings": "SAVINGS",
    "credit": "CREDITLINE",
    "loan": "LOAN",
    "investment": "INVESTMENT",
    "other": "CHECKING",
}

MIME_TYPES: Dict[str, str] = {
    "csv": "text/csv",
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "json": "application/json",
    "qif": "application/x-qif",
    "ofx": "application/x-ofx",
}
