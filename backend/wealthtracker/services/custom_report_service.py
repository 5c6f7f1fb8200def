"""
Custom Report Service

User-defined report definitions (stored under
``money_management_custom_reports``) and the data generation behind their
components: summary stats, chart series, tables, text blocks, category
breakdowns and period comparisons.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.constants import CUSTOM_REPORTS_KEY
from wealthtracker.schemas.finance import (
    Account,
    Budget,
    Category,
    FinancialData,
    Transaction,
)
from wealthtracker.schemas.reporting import (
    ComponentType,
    CustomReport,
    DateRangeType,
    ReportComponent,
)
from wealthtracker.services.key_value_store import KeyValueStore, load_json, save_json
from wealthtracker.timeutils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
PIE_DEFAULT_LIMIT = 10
TABLE_COLUMNS = ["date", "description", "category", "account", "amount", "type"]


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _money(value: Decimal) -> float:
    return float(round(value, 2))


def _start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def get_date_range(
    range_type: DateRangeType,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Bounds of the current month, quarter or year containing ``now``.

    Custom ranges parse ISO dates; a missing start defaults to one month
    before ``now`` and a missing end to ``now``.
    """
    now = ensure_utc(now or utcnow())
    range_type = DateRangeType(range_type)

    if range_type == DateRangeType.MONTH:
        start = _start_of_day(now.replace(day=1))
        return start, _end_of_day(start + relativedelta(months=1, days=-1))
    if range_type == DateRangeType.QUARTER:
        first_month = (now.month - 1) // 3 * 3 + 1
        start = _start_of_day(now.replace(month=first_month, day=1))
        return start, _end_of_day(start + relativedelta(months=3, days=-1))
    if range_type == DateRangeType.YEAR:
        start = _start_of_day(now.replace(month=1, day=1))
        return start, _end_of_day(now.replace(month=12, day=31))

    start = ensure_utc(isoparse(custom_start)) if custom_start else now - relativedelta(months=1)
    end = ensure_utc(isoparse(custom_end)) if custom_end else now
    return start, end


def _is_income(t: Transaction) -> bool:
    return t.type == "income"


def _is_expense(t: Transaction) -> bool:
    return t.type == "expense"


def _totals(transactions: Sequence[Transaction]) -> Tuple[Decimal, Decimal]:
    income = sum((_dec(t.amount) for t in transactions if _is_income(t)), ZERO)
    expenses = sum((abs(_dec(t.amount)) for t in transactions if _is_expense(t)), ZERO)
    return income, expenses


def summary_stats(transactions: Sequence[Transaction], config: Dict[str, Any]) -> Dict[str, float]:
    income, expenses = _totals(transactions)
    net_income = income - expenses
    savings_rate = net_income / income * 100 if income > 0 else ZERO
    expense_count = sum(1 for t in transactions if _is_expense(t))

    stats = {
        "income": _money(income),
        "expenses": _money(expenses),
        "netIncome": _money(net_income),
        "savingsRate": float(round(savings_rate, 2)),
        "transactionCount": len(transactions),
        "avgTransaction": _money(expenses / expense_count) if expense_count else 0.0,
    }

    metrics = config.get("includeMetrics") or config.get("metrics")
    if isinstance(metrics, list):
        return {key: value for key, value in stats.items() if key in metrics}
    return stats


def line_chart(transactions: Sequence[Transaction], config: Dict[str, Any]) -> Dict[str, Any]:
    """Monthly income and expense series."""
    monthly: Dict[str, Dict[str, Decimal]] = {}
    for t in transactions:
        key = ensure_utc(t.date).strftime("%Y-%m")
        bucket = monthly.setdefault(key, {"income": ZERO, "expenses": ZERO})
        if _is_income(t):
            bucket["income"] += _dec(t.amount)
        elif _is_expense(t):
            bucket["expenses"] += abs(_dec(t.amount))

    labels = sorted(monthly)
    datasets = []
    if config.get("dataType", "income-vs-expenses") in ("income-vs-expenses", "both"):
        datasets.append({"label": "Income", "data": [_money(monthly[m]["income"]) for m in labels]})
        datasets.append({"label": "Expenses", "data": [_money(monthly[m]["expenses"]) for m in labels]})
    return {"labels": labels, "datasets": datasets}


def _category_names(categories: Sequence[Category]) -> Dict[str, str]:
    return {c.id: c.name for c in categories}


def pie_chart(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    config: Dict[str, Any],
) -> Dict[str, Any]:
    """Expense share per category: the top N plus an "Other" slice."""
    totals: Dict[str, Decimal] = {}
    for t in transactions:
        if _is_expense(t):
            key = t.category or "Uncategorized"
            totals[key] = totals.get(key, ZERO) + abs(_dec(t.amount))

    limit = int(config.get("limit") or PIE_DEFAULT_LIMIT)
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    slices = ranked[:limit]
    other = sum((amount for _, amount in ranked[limit:]), ZERO)
    if other > 0:
        slices.append(("Other", other))

    names = _category_names(categories)
    return {
        "labels": [names.get(key, key) for key, _ in slices],
        "data": [_money(amount) for _, amount in slices],
    }


def bar_chart(transactions: Sequence[Transaction], config: Dict[str, Any]) -> Dict[str, Any]:
    """Monthly expense totals, labelled like "Jan 2024", in calendar order."""
    monthly: Dict[Tuple[int, int], Decimal] = {}
    for t in transactions:
        if _is_expense(t):
            posted = ensure_utc(t.date)
            key = (posted.year, posted.month)
            monthly[key] = monthly.get(key, ZERO) + abs(_dec(t.amount))

    keys = sorted(monthly)
    return {
        "labels": [datetime(year, month, 1).strftime("%b %Y") for year, month in keys],
        "datasets": [{
            "label": config.get("title") or "Monthly Expenses",
            "data": [_money(monthly[k]) for k in keys],
        }],
    }


def table(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account],
    config: Dict[str, Any],
) -> Dict[str, Any]:
    rows = list(transactions)
    sort_by = config.get("sortBy")
    if sort_by:
        field = Transaction.field_name(sort_by)
        reverse = config.get("sortOrder") == "desc"

        def sort_key(t: Transaction):
            value = getattr(t, field, None)
            if isinstance(value, datetime):
                value = ensure_utc(value)
            # Missing values sort last in ascending order
            return (value is None, value if value is not None else 0)

        rows.sort(key=sort_key, reverse=reverse)

    limit = config.get("limit")
    if limit:
        rows = rows[: int(limit)]

    account_names = {a.id: a.name for a in accounts}
    columns = config.get("columns") or TABLE_COLUMNS
    table_rows = []
    for t in rows:
        posted = ensure_utc(t.date)
        full_row = {
            "date": f"{posted.strftime('%b')} {posted.day}, {posted.year}",
            "description": t.description,
            "category": t.category,
            "account": account_names.get(t.account_id, "Unknown"),
            "amount": t.amount,
            "type": t.type,
        }
        table_rows.append({column: full_row.get(column) for column in columns})
    return {"columns": list(columns), "rows": table_rows}


def category_breakdown(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    budgets: Sequence[Budget],
    config: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """Actual spend per category against its budget."""
    breakdown: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def bucket(key: str) -> Dict[str, Any]:
        return breakdown.setdefault(key, {"actual": ZERO, "budget": ZERO, "count": 0})

    for t in transactions:
        if _is_expense(t):
            entry = bucket(t.category or "Uncategorized")
            entry["actual"] += abs(_dec(t.amount))
            entry["count"] += 1

    for b in budgets:
        bucket(b.category or b.category_key)["budget"] = _dec(b.limit)

    names = _category_names(categories)
    rows = []
    for key, entry in breakdown.items():
        actual, budget = entry["actual"], entry["budget"]
        variance = (actual - budget) / budget * 100 if budget > 0 else ZERO
        rows.append({
            "category": names.get(key, key),
            "actual": _money(actual),
            "budget": _money(budget),
            "variance": float(round(variance, 2)),
            "count": entry["count"],
            "status": "under" if actual <= budget else "over",
        })

    sort_by = config.get("sortBy")
    if sort_by == "name":
        rows.sort(key=lambda r: r["category"].lower())
    elif sort_by == "budget":
        rows.sort(key=lambda r: r["budget"], reverse=True)
    elif sort_by == "amount":
        rows.sort(key=lambda r: r["actual"], reverse=True)
    return rows


def _period_metrics(transactions: Sequence[Transaction]) -> Dict[str, float]:
    income, expenses = _totals(transactions)
    return {
        "income": _money(income),
        "expenses": _money(expenses),
        "netIncome": _money(income - expenses),
        "transactionCount": len(transactions),
    }


def _pct_change(current: float, previous: float, absolute: bool = False) -> float:
    base = abs(previous) if absolute else previous
    if (absolute and previous == 0) or (not absolute and previous <= 0):
        return 0.0
    return round((current - previous) / base * 100, 2)


def _within(transactions: Sequence[Transaction], start: datetime, end: datetime) -> List[Transaction]:
    return [t for t in transactions if start <= ensure_utc(t.date) <= end]


def date_comparison(
    transactions: Sequence[Transaction],
    date_range: Tuple[datetime, datetime],
    config: Dict[str, Any],
) -> Dict[str, Any]:
    """Compare the report period with the equal-length period right before it."""
    start, end = date_range
    period_days = round((end - start).total_seconds() / 86400)
    previous_start = start - timedelta(days=period_days)
    previous_end = start - timedelta(days=1)

    current = _period_metrics(_within(transactions, start, end))
    previous = _period_metrics(_within(transactions, previous_start, previous_end))

    def label(a: datetime, b: datetime) -> str:
        return f"{a.strftime('%b')} {a.day} - {b.strftime('%b')} {b.day}, {b.year}"

    return {
        "current": current,
        "previous": previous,
        "changes": {
            "income": _pct_change(current["income"], previous["income"]),
            "expenses": _pct_change(current["expenses"], previous["expenses"]),
            "netIncome": _pct_change(current["netIncome"], previous["netIncome"], absolute=True),
        },
        "periodLabel": {
            "current": label(start, end),
            "previous": label(previous_start, previous_end),
        },
    }


class CustomReportService:
    def __init__(self, storage: Optional[KeyValueStore] = None, clock: Optional[Clock] = None):
        self.storage = storage
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def get_custom_reports(self) -> List[CustomReport]:
        raw = load_json(self.storage, CUSTOM_REPORTS_KEY, [])
        reports = []
        for item in raw if isinstance(raw, list) else []:
            try:
                reports.append(CustomReport.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable custom report: {e}")
        return reports

    def get_custom_report(self, report_id: str) -> Optional[CustomReport]:
        return next((r for r in self.get_custom_reports() if r.id == report_id), None)

    def save_custom_report(self, report: CustomReport) -> CustomReport:
        """Insert or replace by id; stamps ``updatedAt`` (and ``createdAt`` on first save)."""
        now = ensure_utc(self._clock())
        report = report.model_copy(update={
            "created_at": report.created_at or now,
            "updated_at": now,
        })
        reports = self.get_custom_reports()
        for index, existing in enumerate(reports):
            if existing.id == report.id:
                reports[index] = report
                break
        else:
            reports.append(report)
        save_json(self.storage, CUSTOM_REPORTS_KEY, [r.to_storage() for r in reports])
        return report

    def delete_custom_report(self, report_id: str) -> bool:
        reports = self.get_custom_reports()
        remaining = [r for r in reports if r.id != report_id]
        if len(remaining) == len(reports):
            return False
        save_json(self.storage, CUSTOM_REPORTS_KEY, [r.to_storage() for r in remaining])
        return True

    # ------------------------------------------------------------------
    # Data generation
    # ------------------------------------------------------------------

    def get_date_range(self, report: CustomReport, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        filters = report.filters
        return get_date_range(
            filters.date_range,
            filters.custom_start_date,
            filters.custom_end_date,
            now=now or self._clock(),
        )

    def filter_transactions(self, report: CustomReport, transactions: Sequence[Transaction]) -> List[Transaction]:
        """Account, category and tag filters (not the date range)."""
        filters = report.filters
        kept = list(transactions)
        if filters.accounts:
            kept = [t for t in kept if t.account_id in filters.accounts]
        if filters.categories:
            kept = [t for t in kept if t.category in filters.categories]
        if filters.tags:
            wanted = set(filters.tags)
            kept = [t for t in kept if wanted.intersection(t.tags)]
        return kept

    def generate_report_data(
        self, report: CustomReport, data: FinancialData, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        start, end = self.get_date_range(report, now)
        matching = self.filter_transactions(report, data.transactions or [])
        in_range = _within(matching, start, end)
        accounts = data.accounts or []
        budgets = data.budgets or []
        categories = data.categories or []

        component_data: Dict[str, Any] = {}
        for component in report.components:
            component_data[component.id] = self._component_data(
                component, in_range, matching, accounts, budgets, categories, (start, end)
            )

        logger.debug(
            f"Generated custom report '{report.name}': {len(in_range)} transactions, "
            f"{len(report.components)} components"
        )
        return {
            "report": report.to_storage(),
            "dateRange": {"startDate": start, "endDate": end},
            "data": component_data,
        }

    def _component_data(
        self,
        component: ReportComponent,
        in_range: List[Transaction],
        matching: List[Transaction],
        accounts: List[Account],
        budgets: List[Budget],
        categories: List[Category],
        date_range: Tuple[datetime, datetime],
    ) -> Any:
        config = component.config
        kind = component.type
        if kind == ComponentType.SUMMARY_STATS:
            return summary_stats(in_range, config)
        if kind == ComponentType.LINE_CHART:
            return line_chart(in_range, config)
        if kind == ComponentType.PIE_CHART:
            return pie_chart(in_range, categories, config)
        if kind == ComponentType.BAR_CHART:
            return bar_chart(in_range, config)
        if kind == ComponentType.TABLE:
            return table(in_range, accounts, config)
        if kind == ComponentType.TEXT_BLOCK:
            return {"content": config.get("content", "")}
        if kind == ComponentType.CATEGORY_BREAKDOWN:
            return category_breakdown(in_range, categories, budgets, config)
        if kind == ComponentType.DATE_COMPARISON:
            # Needs the preceding period too, so it sees every matching transaction
            return date_comparison(matching, date_range, config)
        return None
