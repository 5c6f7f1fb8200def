"""
CSV Builder: flat and grouped CSV exports.

Part of the export_service package.
"""

import json
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from wealthtracker.schemas.export import ExportOptions, GroupBy
from wealthtracker.schemas.finance import (
    Account,
    Budget,
    FinancialRecord,
    Investment,
    Transaction,
)
from wealthtracker.timeutils import ensure_utc, iso_z, utcnow

logger = logging.getLogger(__name__)


def format_number(value: float) -> str:
    """Render numbers the way the client does: 150 not 150.0, 0.1 as 0.1."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def _record_date(item: FinancialRecord) -> Optional[datetime]:
    if isinstance(item, Transaction):
        return item.date
    if isinstance(item, Account):
        return item.last_updated
    if isinstance(item, Investment):
        return item.last_updated or item.purchase_date
    if isinstance(item, Budget):
        return item.updated_at
    return None


def filter_by_date(
    items: Sequence[FinancialRecord],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
) -> List[FinancialRecord]:
    """Keep items dated within [start, end]. Undated items always pass."""
    if not start_date or not end_date:
        return list(items)
    start, end = ensure_utc(start_date), ensure_utc(end_date)
    kept = []
    for item in items:
        item_date = _record_date(item)
        if item_date is None or start <= ensure_utc(item_date) <= end:
            kept.append(item)
    return kept


def to_exportable(item: FinancialRecord) -> Dict[str, Any]:
    """Flatten a record into a CSV row dict, adding the derived columns."""
    row = item.model_dump(by_alias=True)
    if isinstance(item, Transaction):
        row["categoryName"] = item.category
    elif isinstance(item, Account):
        row["currentBalance"] = item.balance
    elif isinstance(item, Investment):
        current_value = item.resolved_current_value
        row["currentValue"] = current_value
        row["totalReturn"] = current_value - item.resolved_cost_basis
    elif isinstance(item, Budget):
        limit = item.limit
        row["remaining"] = limit - item.spent
        row["percentUsed"] = item.spent / limit * 100 if limit > 0 else 0
    return row


def _group_key(item: FinancialRecord, group_by: GroupBy) -> str:
    if group_by == GroupBy.CATEGORY:
        for attr in ("category", "category_id", "account_id"):
            value = getattr(item, attr, None)
            if isinstance(value, str) and value:
                return value
        return "Uncategorized"
    if group_by == GroupBy.ACCOUNT:
        for attr in ("account_id", "account_name", "name"):
            value = getattr(item, attr, None)
            if value:
                return value
        return "Unknown Account"
    if group_by == GroupBy.MONTH:
        item_date = _record_date(item) or utcnow()
        return ensure_utc(item_date).strftime("%Y-%m")
    return "All"


def _group_amount(item: FinancialRecord) -> float:
    if isinstance(item, Transaction):
        return item.amount
    if isinstance(item, Account):
        return item.balance
    if isinstance(item, Investment):
        return item.resolved_current_value
    if isinstance(item, Budget):
        return item.amount or 0.0
    return 0.0


def csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, datetime):
        return iso_z(value)
    if isinstance(value, (list, tuple)):
        text = ",".join(csv_cell(v) for v in value)
    elif isinstance(value, dict):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    if "," in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def array_to_csv(rows: List[Dict[str, Any]]) -> str:
    """Header row from the first row's keys, one line per row, no trailing newline."""
    if not rows:
        return ""
    headers = list(rows[0].keys())
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(csv_cell(row.get(header)) for header in headers))
    return "\n".join(lines)


def export_to_csv(items: Sequence[FinancialRecord], options: Optional[ExportOptions] = None) -> str:
    """
    Flatten transactions, accounts, investments or budgets into CSV.

    Grouped exports (category, account, month) emit one ``Group,Count,Total``
    row per group instead of one row per record. Empty input yields "".
    """
    start = options.start_date if options else None
    end = options.end_date if options else None
    group_by = (options.group_by if options else None) or GroupBy.NONE

    filtered = filter_by_date(items, start, end)
    if not filtered:
        return ""
    logger.debug(f"CSV export of {len(filtered)} record(s), group_by={group_by.value}")

    if group_by == GroupBy.NONE:
        return array_to_csv([to_exportable(item) for item in filtered])

    groups: "OrderedDict[str, List[FinancialRecord]]" = OrderedDict()
    for item in filtered:
        groups.setdefault(_group_key(item, group_by), []).append(item)

    summary_rows = [
        {
            "Group": group,
            "Count": len(members),
            "Total": sum(abs(_group_amount(m)) for m in members),
        }
        for group, members in groups.items()
    ]
    return array_to_csv(summary_rows)
