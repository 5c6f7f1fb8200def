"""
PDF Report: financial summary document.

Part of the export_service package. Lays out title, period, optional logo
and one summary section per included data slice on a vertical cursor.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from wealthtracker.schemas.export import ExportOptions
from wealthtracker.schemas.finance import (
    Account,
    Budget,
    FinancialData,
    Investment,
    Transaction,
)
from wealthtracker.services.export_service.document_builder import (
    DocumentBuilder,
    DocumentBuilderFactory,
    default_document_builder,
)
from wealthtracker.timeutils import ensure_utc

logger = logging.getLogger(__name__)

LEFT_MARGIN = 20
TOP_Y = 20
SECTION_BREAK_Y = 250
LINE_BREAK_Y = 270
CHART_PLACEHOLDER = "Charts would be rendered here from DOM elements"


def format_currency(amount: float) -> str:
    """USD with thousands separators: $1,234.56 / -$1,234.56"""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_date(dt: datetime) -> str:
    """Short US date: Jan 5, 2024"""
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"


class PageCursor:
    """Tracks the vertical write position and starts new pages."""

    def __init__(self, doc: DocumentBuilder, y: float = TOP_Y):
        self.doc = doc
        self.y = y

    def ensure_room(self, threshold: float) -> None:
        if self.y > threshold:
            self.doc.add_page()
            self.y = TOP_Y

    def section(self, title: str) -> None:
        self.ensure_room(SECTION_BREAK_Y)
        self.doc.set_font_size(16)
        self.doc.text(title, LEFT_MARGIN, self.y)
        self.y += 10
        self.doc.set_font_size(10)

    def line(self, text: str, x: float = LEFT_MARGIN, step: float = 5) -> None:
        self.ensure_room(LINE_BREAK_Y)
        self.doc.text(text, x, self.y)
        self.y += step


def _accounts_section(cursor: PageCursor, accounts: List[Account]) -> None:
    cursor.section("Accounts Summary")
    for account in accounts:
        cursor.line(f"{account.name}: {format_currency(account.balance)}")

    total = sum((Decimal(str(a.balance)) for a in accounts), Decimal("0"))
    cursor.ensure_room(LINE_BREAK_Y)
    cursor.doc.set_font_size(12)
    cursor.doc.text(f"Total Balance: {format_currency(float(total))}", LEFT_MARGIN, cursor.y + 5)
    cursor.y += 20


def _transactions_section(cursor: PageCursor, transactions: List[Transaction], options: ExportOptions) -> None:
    cursor.section("Transactions Summary")
    start, end = ensure_utc(options.start_date), ensure_utc(options.end_date)
    by_category: "OrderedDict[str, List[Transaction]]" = OrderedDict()
    for t in transactions:
        if start <= ensure_utc(t.date) <= end:
            by_category.setdefault(t.category or "Uncategorized", []).append(t)

    for category, items in by_category.items():
        total = sum((abs(Decimal(str(t.amount))) for t in items), Decimal("0"))
        cursor.line(f"{category}: {len(items)} transactions, {format_currency(float(total))}")
    cursor.y += 15


def _investments_section(cursor: PageCursor, investments: List[Investment]) -> None:
    cursor.section("Investments Summary")
    for inv in investments:
        current_value = Decimal(str(inv.current_value or 0))
        cost_basis = Decimal(str(inv.resolved_cost_basis))
        gain_loss = current_value - cost_basis
        pct = gain_loss / cost_basis * 100 if cost_basis > 0 else Decimal("0")
        sign = "+" if gain_loss >= 0 else ""
        cursor.line(f"{inv.symbol}: {format_currency(float(current_value))} ({sign}{pct:.2f}%)")
    cursor.y += 15


def _budgets_section(cursor: PageCursor, budgets: List[Budget]) -> None:
    cursor.section("Budget Summary")
    for budget in budgets:
        spent = Decimal(str(budget.spent or 0))
        budgeted = Decimal(str(budget.limit))
        pct = spent / budgeted * 100 if budgeted > 0 else Decimal("0")
        cursor.line(
            f"{budget.category_key}: {format_currency(float(spent))} / "
            f"{format_currency(float(budgeted))} ({pct:.1f}%)"
        )
    cursor.y += 15


def export_to_pdf(
    data: FinancialData,
    options: ExportOptions,
    builder_factory: Optional[DocumentBuilderFactory] = None,
) -> bytes:
    """
    Render the financial summary document and return the PDF bytes.

    A logo that fails to load is logged and skipped.
    """
    doc = (builder_factory or default_document_builder)()
    cursor = PageCursor(doc)

    doc.set_font_size(20)
    doc.text(options.custom_title or "Financial Report", LEFT_MARGIN, cursor.y)
    cursor.y += 10

    doc.set_font_size(12)
    doc.text(
        f"Period: {format_date(options.start_date)} - {format_date(options.end_date)}",
        LEFT_MARGIN,
        cursor.y,
    )
    cursor.y += 20

    if options.logo_url:
        try:
            doc.add_image(options.logo_url, 150, 10, 40, 20)
        except Exception as e:
            logger.warning(f"Could not add logo to PDF: {e}")

    if data.accounts is not None and options.include_accounts:
        _accounts_section(cursor, data.accounts)
    if data.transactions is not None and options.include_transactions:
        _transactions_section(cursor, data.transactions, options)
    if data.investments is not None and options.include_investments:
        _investments_section(cursor, data.investments)
    if data.budgets is not None and options.include_budgets:
        _budgets_section(cursor, data.budgets)

    if options.include_charts:
        cursor.ensure_room(SECTION_BREAK_Y)
        doc.set_font_size(14)
        doc.text(CHART_PLACEHOLDER, LEFT_MARGIN, cursor.y)

    return doc.output()
