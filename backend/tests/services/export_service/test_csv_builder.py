"""
Tests for backend/wealthtracker/services/export_service/csv_builder.py

Covers:
- format_number: client-style number rendering
- array_to_csv: header row, quoting and escaping
- export_to_csv: date filtering, derived columns, grouped summaries
"""

from datetime import datetime, timezone

from wealthtracker.schemas.export import ExportFormat, ExportOptions, GroupBy
from wealthtracker.schemas.finance import Account, Budget, Investment, Transaction
from wealthtracker.services.export_service.csv_builder import (
    array_to_csv,
    export_to_csv,
    filter_by_date,
    format_number,
    to_exportable,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _january(group_by=None):
    return ExportOptions(
        start_date=_utc(2024, 1, 1),
        end_date=_utc(2024, 1, 31, 23, 59, 59),
        format=ExportFormat.CSV,
        group_by=group_by,
    )


class TestFormatNumber:
    def test_whole_float_drops_decimal(self):
        """Happy path: 150.0 renders as 150."""
        assert format_number(150.0) == "150"

    def test_fraction_kept(self):
        """Happy path: fractional values keep their digits."""
        assert format_number(0.1) == "0.1"
        assert format_number(-120.25) == "-120.25"

    def test_integer(self):
        """Edge case: ints pass through."""
        assert format_number(7) == "7"


class TestArrayToCsv:
    def test_empty_rows(self):
        """Edge case: no rows gives an empty string."""
        assert array_to_csv([]) == ""

    def test_header_and_rows_without_trailing_newline(self):
        """Happy path: header from the first row, rows joined by newlines."""
        csv = array_to_csv([{"a": 1, "b": "x"}, {"a": 2.5, "b": None}])
        assert csv == "a,b\n1,x\n2.5,"

    def test_escapes_commas_and_quotes(self):
        """Edge case: values with commas or quotes are quoted, quotes doubled."""
        csv = array_to_csv([{"city": 'New, "York"'}])
        assert csv.split("\n")[1] == '"New, ""York"""'

    def test_booleans_and_lists(self):
        """Edge case: booleans are lowercase, lists are comma-joined (and so quoted)."""
        csv = array_to_csv([{"flag": True, "tags": ["a", "b"]}])
        assert csv.split("\n")[1] == 'true,"a,b"'


class TestExportToCsv:
    def test_transaction_row_shape(self, sample_transactions):
        """Happy path: camelCase headers plus the derived categoryName column."""
        csv = export_to_csv(sample_transactions[:1])
        header, row = csv.split("\n")
        assert header == "id,date,amount,description,type,category,accountId,accountName,notes,tags,categoryName"
        assert row == "t1,2024-01-03T00:00:00.000Z,3000,Salary,income,cat-salary,acc-1,,,,cat-salary"

    def test_description_with_comma_and_quotes(self):
        """Edge case: description New, "York" is escaped in the row."""
        t = Transaction(id="x", date=_utc(2024, 1, 2), amount=5.0, description='New, "York"')
        csv = export_to_csv([t])
        assert '"New, ""York"""' in csv.split("\n")[1]

    def test_date_filter_excludes_out_of_range(self, sample_transactions):
        """Happy path: the December transaction falls outside January."""
        csv = export_to_csv(sample_transactions, _january())
        assert len(csv.split("\n")) == 1 + 4
        assert "t5" not in csv

    def test_empty_after_filter(self, sample_transactions):
        """Edge case: nothing in range yields an empty string."""
        options = ExportOptions(start_date=_utc(2030, 1, 1), end_date=_utc(2030, 2, 1))
        assert export_to_csv(sample_transactions, options) == ""

    def test_grouped_by_category(self, sample_transactions):
        """Happy path: one Group,Count,Total row per category in first-seen order."""
        csv = export_to_csv(sample_transactions, _january(GroupBy.CATEGORY))
        assert csv == (
            "Group,Count,Total\n"
            "cat-salary,1,3000\n"
            "cat-food,2,180.25\n"
            "cat-housing,1,900"
        )

    def test_grouped_by_month(self, sample_transactions):
        """Happy path: month grouping uses YYYY-MM keys."""
        options = ExportOptions(
            start_date=_utc(2023, 12, 1), end_date=_utc(2024, 1, 31), group_by=GroupBy.MONTH
        )
        lines = export_to_csv(sample_transactions, options).split("\n")
        assert lines[1].startswith("2024-01,4,")
        assert lines[2] == "2023-12,1,80"

    def test_group_none_is_flat(self, sample_transactions):
        """Edge case: group_by none behaves like no grouping."""
        csv = export_to_csv(sample_transactions, _january(GroupBy.NONE))
        assert csv.startswith("id,date,amount")


class TestDerivedColumns:
    def test_account_current_balance(self):
        """Happy path: accounts gain currentBalance."""
        row = to_exportable(Account(id="a", name="Checking", balance=12.5))
        assert row["currentBalance"] == 12.5

    def test_investment_return(self):
        """Happy path: currentValue and totalReturn from cost basis."""
        row = to_exportable(Investment(id="i", symbol="VTI", quantity=10, purchase_price=200.0,
                                       current_value=2300.0))
        assert row["currentValue"] == 2300.0
        assert row["totalReturn"] == 300.0

    def test_budget_remaining_with_zero_limit(self):
        """Edge case: a zero budget reports 0 percent used."""
        row = to_exportable(Budget(id="b", category="food", amount=0.0, spent=10.0))
        assert row["remaining"] == -10.0
        assert row["percentUsed"] == 0

    def test_filter_keeps_undated_records(self):
        """Edge case: records without a date always pass the range filter."""
        account = Account(id="a", name="Checking")
        kept = filter_by_date([account], _utc(2024, 1, 1), _utc(2024, 1, 2))
        assert kept == [account]
