"""
Tests for backend/wealthtracker/services/export_service/workbook_builder.py

Covers:
- export_to_excel: sheet selection, header styling, row content
"""

from datetime import datetime, timezone
from io import BytesIO

import pytest

from wealthtracker.schemas.export import ExportFormat, ExportOptions
from wealthtracker.services.export_service.workbook_builder import export_to_excel

openpyxl = pytest.importorskip("openpyxl")


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _options(**kwargs):
    defaults = dict(start_date=_utc(2024, 1, 1), end_date=_utc(2024, 1, 31), format=ExportFormat.XLSX)
    defaults.update(kwargs)
    return ExportOptions(**defaults)


def _load(content: bytes):
    return openpyxl.load_workbook(BytesIO(content))


class TestExportToExcel:
    def test_sheets_for_full_export(self, sample_data):
        """Happy path: every included, populated slice gets its sheet."""
        content = export_to_excel(
            sample_data,
            _options(include_budgets=True, include_investments=True),
            now=_utc(2024, 1, 15, 12, 0),
        )
        wb = _load(content)
        assert wb.sheetnames == [
            "Summary", "Accounts", "Budgets", "Goals", "Transactions", "Categories", "Investments",
        ]
        assert wb["Summary"]["A1"].value == "Financial Report"
        assert wb["Summary"]["A2"].value == "Generated: 2024-01-15 12:00 UTC"

    def test_minimal_export_has_summary_and_goals_only(self, sample_data):
        """Edge case: excluded slices are left out; goals are always written when present."""
        content = export_to_excel(
            sample_data,
            _options(include_accounts=False, include_transactions=False),
        )
        assert _load(content).sheetnames == ["Summary", "Goals"]

    def test_table_layout(self, sample_data):
        """Happy path: title row 1, styled headers row 3, data from row 4."""
        wb = _load(export_to_excel(sample_data, _options()))
        ws = wb["Transactions"]
        assert ws["A1"].value == "TRANSACTIONS"
        assert [c.value for c in ws[3]] == ["Date", "Description", "Category", "Amount", "Type", "Account"]
        assert ws["A3"].font.bold
        assert ws["A4"].value == "2024-01-03"
        # December transaction is outside the period
        assert ws.max_row == 3 + 4

    def test_budget_status(self, sample_data):
        """Happy path: overspent budgets are flagged."""
        wb = _load(export_to_excel(sample_data, _options(include_budgets=True)))
        ws = wb["Budgets"]
        assert ws["F4"].value == "OVER BUDGET"
        assert ws["F5"].value == "On Track"

    def test_category_totals(self, sample_data):
        """Happy path: per-category count, total and average."""
        ws = _load(export_to_excel(sample_data, _options()))["Categories"]
        rows = {r[0]: r[1:] for r in ws.iter_rows(min_row=4, values_only=True)}
        assert rows["cat-food"][:2] == (2, 180.25)
        assert rows["cat-housing"] == (1, 900, 900)
