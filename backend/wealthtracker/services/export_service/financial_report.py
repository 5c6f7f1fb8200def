"""
Financial Report: the full report as PDF or CSV.

Part of the export_service package. Both renderings open with the same
executive summary figures as the workbook's Summary sheet, followed by
budget performance, goal progress and (CSV only) the period's transactions.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from wealthtracker.schemas.export import ExportOptions
from wealthtracker.schemas.finance import Budget, FinancialData, Transaction
from wealthtracker.services.export_service.csv_builder import csv_cell
from wealthtracker.services.export_service.document_builder import (
    DocumentBuilderFactory,
    default_document_builder,
)
from wealthtracker.services.export_service.pdf_report import (
    LEFT_MARGIN,
    SECTION_BREAK_Y,
    PageCursor,
    format_currency,
    format_date,
)
from wealthtracker.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Financial Report"
DETAIL_INDENT = 30
DETAIL_STEP = 6


def report_title(options: ExportOptions) -> str:
    return options.custom_title or DEFAULT_TITLE


def transactions_in_range(transactions: Sequence[Transaction], options: ExportOptions) -> List[Transaction]:
    start, end = ensure_utc(options.start_date), ensure_utc(options.end_date)
    return [t for t in transactions if start <= ensure_utc(t.date) <= end]


def summarize(data: FinancialData, transactions: Sequence[Transaction]) -> Dict[str, float]:
    """Headline figures: balances split by sign, income and expenses of ``transactions``."""
    balances = [a.balance for a in data.accounts or []]
    total_assets = sum(b for b in balances if b > 0)
    total_liabilities = sum(abs(b) for b in balances if b < 0)
    income = sum(t.amount for t in transactions if t.type == "income")
    expenses = sum(abs(t.amount) for t in transactions if t.type == "expense")
    cash_flow = income - expenses
    return {
        "net_worth": total_assets - total_liabilities,
        "total_assets": total_assets,
        "total_liabilities": total_liabilities,
        "income": income,
        "expenses": expenses,
        "cash_flow": cash_flow,
        "savings_rate": cash_flow / income * 100 if income > 0 else 0.0,
    }


def summary_lines(figures: Dict[str, float]) -> List[Tuple[str, str]]:
    return [
        ("Net Worth", format_currency(figures["net_worth"])),
        ("Total Assets", format_currency(figures["total_assets"])),
        ("Total Liabilities", format_currency(figures["total_liabilities"])),
        ("Income", format_currency(figures["income"])),
        ("Expenses", format_currency(figures["expenses"])),
        ("Cash Flow", format_currency(figures["cash_flow"])),
        ("Savings Rate", f"{figures['savings_rate']:.1f}%"),
    ]


def _percent_used(budget: Budget) -> float:
    return budget.spent / budget.limit * 100 if budget.limit > 0 else 0.0


def _period(options: ExportOptions) -> str:
    return f"Period: {format_date(options.start_date)} - {format_date(options.end_date)}"


# ----------------------------------------------------------------------------
# PDF
# ----------------------------------------------------------------------------

def _heading(cursor: PageCursor, title: str) -> None:
    cursor.ensure_room(SECTION_BREAK_Y)
    cursor.y += 10
    cursor.doc.set_font_size(14)
    cursor.doc.text(title, LEFT_MARGIN, cursor.y)
    cursor.y += 8
    cursor.doc.set_font_size(10)


def generate_pdf_report(
    data: FinancialData,
    options: ExportOptions,
    builder_factory: Optional[DocumentBuilderFactory] = None,
) -> bytes:
    doc = (builder_factory or default_document_builder)()
    cursor = PageCursor(doc)
    figures = summarize(data, transactions_in_range(data.transactions or [], options))

    doc.set_font_size(20)
    doc.text(report_title(options), LEFT_MARGIN, cursor.y)
    cursor.y += 10
    doc.set_font_size(10)
    doc.text(_period(options), LEFT_MARGIN, cursor.y)
    cursor.y += 10

    _heading(cursor, "Executive Summary")
    for label, value in summary_lines(figures):
        cursor.line(f"{label}: {value}", x=DETAIL_INDENT, step=DETAIL_STEP)

    if options.include_budgets and data.budgets:
        _heading(cursor, "Budget Performance")
        for budget in data.budgets:
            cursor.line(
                f"{budget.category_key}: {format_currency(budget.spent)} / "
                f"{format_currency(budget.limit)} ({_percent_used(budget):.0f}%)",
                x=DETAIL_INDENT,
                step=DETAIL_STEP,
            )

    if data.goals:
        _heading(cursor, "Goal Progress")
        for goal in data.goals:
            cursor.line(f"{goal.name}: {goal.progress:.0f}% complete", x=DETAIL_INDENT, step=DETAIL_STEP)

    return doc.output()


# ----------------------------------------------------------------------------
# CSV
# ----------------------------------------------------------------------------

def generate_csv_report(
    data: FinancialData,
    options: ExportOptions,
    now: Optional[datetime] = None,
) -> str:
    """
    Sectioned CSV: title block, SUMMARY, BUDGET PERFORMANCE, GOAL PROGRESS
    and TRANSACTIONS, separated by blank lines.

    Budgets need ``include_budgets`` and transactions ``include_transactions``;
    goals are written whenever present. Money cells use the same formatting
    as the PDF, so most of them end up quoted.
    """
    now = ensure_utc(now or utcnow())
    transactions = transactions_in_range(data.transactions or [], options)
    figures = summarize(data, transactions)

    rows: List[List[Any]] = [
        [report_title(options)],
        [f"Generated: {now.strftime('%Y-%m-%d %H:%M')} UTC"],
        [_period(options)],
        [],
        ["SUMMARY"],
        ["Metric", "Value"],
    ]
    rows.extend([label, value] for label, value in summary_lines(figures))
    rows.append([])

    if options.include_budgets and data.budgets:
        rows.append(["BUDGET PERFORMANCE"])
        rows.append(["Category", "Budget", "Spent", "Remaining", "% Used"])
        for b in data.budgets:
            rows.append([
                b.category_key,
                format_currency(b.limit),
                format_currency(b.spent),
                format_currency(b.limit - b.spent),
                f"{_percent_used(b):.0f}%",
            ])
        rows.append([])

    if data.goals:
        rows.append(["GOAL PROGRESS"])
        rows.append(["Goal", "Target", "Current", "Remaining", "Progress"])
        for g in data.goals:
            rows.append([
                g.name,
                format_currency(g.target_amount),
                format_currency(g.current_amount),
                format_currency(g.remaining),
                f"{g.progress:.0f}%",
            ])
        rows.append([])

    if options.include_transactions and transactions:
        rows.append(["TRANSACTIONS"])
        rows.append(["Date", "Description", "Category", "Amount", "Type"])
        for t in transactions:
            rows.append([
                ensure_utc(t.date).strftime("%Y-%m-%d"),
                t.description,
                t.category or "Uncategorized",
                format_currency(abs(t.amount)),
                t.type,
            ])

    while rows and not rows[-1]:
        rows.pop()
    logger.debug(f"CSV report built with {len(rows)} line(s)")
    return "\n".join(",".join(csv_cell(v) for v in row) for row in rows) + "\n"
