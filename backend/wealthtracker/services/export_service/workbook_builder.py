"""
Workbook Builder: multi-sheet XLSX export with openpyxl.

Part of the export_service package.
"""

import io
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from wealthtracker.exceptions import GenerationError
from wealthtracker.schemas.export import ExportOptions
from wealthtracker.schemas.finance import FinancialData
from wealthtracker.services.export_service.financial_report import report_title, summarize, transactions_in_range
from wealthtracker.services.export_service.pdf_report import format_date
from wealthtracker.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

HEADER_FILL = "3B82F6"


def _write_table(ws, title: str, headers: List[str], rows: List[List[Any]]) -> None:
    from openpyxl.styles import Alignment, Font, PatternFill

    ws.cell(row=1, column=1, value=title).font = Font(bold=True, size=14)
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color=HEADER_FILL, end_color=HEADER_FILL, fill_type="solid")
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=3, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    for row_idx, row in enumerate(rows, 4):
        for col, value in enumerate(row, 1):
            ws.cell(row=row_idx, column=col, value=value)

    # Auto-adjust column widths
    for col in ws.columns:
        max_length = 0
        col_letter = col[0].column_letter
        for cell in col[2:]:
            val = str(cell.value) if cell.value is not None else ""
            max_length = max(max_length, len(val))
        ws.column_dimensions[col_letter].width = min(max_length + 2, 40)


def _write_summary(ws, data: FinancialData, options: ExportOptions, transactions, now: datetime) -> None:
    from openpyxl.styles import Font

    figures = summarize(data, transactions)
    ws["A1"] = report_title(options)
    ws["A1"].font = Font(size=18, bold=True)
    ws["A2"] = f"Generated: {now.strftime('%Y-%m-%d %H:%M')} UTC"
    ws["A3"] = f"Period: {format_date(options.start_date)} - {format_date(options.end_date)}"
    ws["A5"] = "EXECUTIVE SUMMARY"
    ws["A5"].font = Font(bold=True)
    ws["A6"], ws["B6"] = "Metric", "Value"
    ws["A6"].font = Font(bold=True)
    ws["B6"].font = Font(bold=True)

    metrics = [
        ("Net Worth", figures["net_worth"]),
        ("Total Assets", figures["total_assets"]),
        ("Total Liabilities", figures["total_liabilities"]),
        ("Income", figures["income"]),
        ("Expenses", figures["expenses"]),
        ("Cash Flow", figures["cash_flow"]),
        ("Savings Rate %", round(figures["savings_rate"], 2)),
    ]
    for row, (label, value) in enumerate(metrics, 7):
        ws.cell(row=row, column=1, value=label)
        ws.cell(row=row, column=2, value=value)
    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 18


def export_to_excel(
    data: FinancialData,
    options: ExportOptions,
    now: Optional[datetime] = None,
) -> bytes:
    """
    Build the XLSX workbook.

    The Summary sheet is always present. Accounts, Budgets, Goals,
    Transactions, Categories and Investments sheets are added only when the
    matching data slice is populated (and included by the options).
    """
    try:
        from openpyxl import Workbook
    except ImportError as e:
        raise GenerationError("openpyxl is required for XLSX export. Install it with: pip install openpyxl") from e

    now = now or utcnow()
    transactions = transactions_in_range(data.transactions or [], options)

    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"
    _write_summary(summary, data, options, transactions, now)

    if options.include_accounts and data.accounts:
        _write_table(
            wb.create_sheet("Accounts"),
            "ACCOUNTS",
            ["Name", "Type", "Balance", "Currency"],
            [[a.name, a.type, a.balance, a.currency or "USD"] for a in data.accounts],
        )

    if options.include_budgets and data.budgets:
        rows = []
        for b in data.budgets:
            limit = b.limit
            remaining = limit - b.spent
            pct = b.spent / limit * 100 if limit > 0 else 0.0
            rows.append([
                b.category_key,
                limit,
                b.spent,
                remaining,
                round(pct, 1),
                "OVER BUDGET" if b.spent > limit else "On Track",
            ])
        _write_table(
            wb.create_sheet("Budgets"),
            "BUDGET PERFORMANCE",
            ["Category", "Budget", "Spent", "Remaining", "% Used", "Status"],
            rows,
        )

    if data.goals:
        _write_table(
            wb.create_sheet("Goals"),
            "FINANCIAL GOALS",
            ["Goal Name", "Target Amount", "Current Amount", "Remaining", "Progress %", "Status"],
            [
                [
                    g.name,
                    g.target_amount,
                    g.current_amount,
                    g.remaining,
                    round(g.progress, 1),
                    "COMPLETED" if g.progress >= 100 else "In Progress",
                ]
                for g in data.goals
            ],
        )

    if options.include_transactions and data.transactions:
        _write_table(
            wb.create_sheet("Transactions"),
            "TRANSACTIONS",
            ["Date", "Description", "Category", "Amount", "Type", "Account"],
            [
                [
                    ensure_utc(t.date).strftime("%Y-%m-%d"),
                    t.description,
                    t.category or "Uncategorized",
                    abs(t.amount),
                    t.type,
                    t.account_name or t.account_id or "",
                ]
                for t in transactions
            ],
        )

        category_totals: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
        for t in transactions:
            bucket = category_totals.setdefault(t.category or "Uncategorized", {"count": 0, "total": 0.0})
            bucket["count"] += 1
            bucket["total"] += abs(t.amount)
        _write_table(
            wb.create_sheet("Categories"),
            "SPENDING BY CATEGORY",
            ["Category", "Transaction Count", "Total Amount", "Average"],
            [
                [name, int(v["count"]), round(v["total"], 2), round(v["total"] / v["count"], 2)]
                for name, v in category_totals.items()
            ],
        )

    if options.include_investments and data.investments:
        _write_table(
            wb.create_sheet("Investments"),
            "INVESTMENTS",
            ["Symbol", "Name", "Quantity", "Purchase Price", "Current Value", "Gain/Loss"],
            [
                [
                    i.symbol,
                    i.name,
                    i.quantity,
                    i.purchase_price,
                    i.resolved_current_value,
                    round(i.resolved_current_value - i.resolved_cost_basis, 2),
                ]
                for i in data.investments
            ],
        )

    output = io.BytesIO()
    wb.save(output)
    logger.debug(f"Workbook built with sheets: {', '.join(wb.sheetnames)}")
    return output.getvalue()
