"""
Tests for backend/wealthtracker/services/export_service/pdf_report.py

Covers:
- format_currency / format_date helpers
- export_to_pdf layout against a recording DocumentBuilder
- page breaks, logo failures and absent data slices
- fpdf2 imported once per process and cached
- a real fpdf2 document end to end
"""

import sys
import types
from datetime import datetime, timezone
from typing import List, Tuple
from unittest.mock import MagicMock, patch

import pytest

from wealthtracker.exceptions import GenerationError
from wealthtracker.schemas.export import ExportOptions
from wealthtracker.schemas.finance import Account, FinancialData
from wealthtracker.services.export_service.document_builder import (
    DocumentBuilder,
    FpdfDocumentBuilder,
    _sanitize_for_pdf,
    is_loaded,
    reset_cache,
)
from wealthtracker.services.export_service.pdf_report import (
    CHART_PLACEHOLDER,
    export_to_pdf,
    format_currency,
    format_date,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class RecordingBuilder(DocumentBuilder):
    def __init__(self, fail_images: bool = False):
        self.texts: List[Tuple[str, float, float, float]] = []
        self.font_size = 12
        self.pages = 1
        self.images = []
        self.fail_images = fail_images

    def set_font_size(self, size):
        self.font_size = size

    def text(self, text, x, y):
        self.texts.append((text, x, y, self.font_size))

    def add_page(self):
        self.pages += 1

    def add_image(self, source, x, y, width, height):
        if self.fail_images:
            raise IOError("cannot load image")
        self.images.append((source, x, y, width, height))

    def output(self):
        return b"%PDF-recorded"

    def strings(self):
        return [t[0] for t in self.texts]


def _options(**kwargs):
    defaults = dict(start_date=_utc(2024, 1, 1), end_date=_utc(2024, 1, 31))
    defaults.update(kwargs)
    return ExportOptions(**defaults)


class TestFormatting:
    def test_format_currency(self):
        """Happy path: thousands separators and two decimals."""
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency(-99.999) == "-$100.00"

    def test_format_date(self):
        """Happy path: short month, unpadded day."""
        assert format_date(_utc(2024, 1, 5)) == "Jan 5, 2024"

    def test_sanitize_for_pdf(self):
        """Edge case: typographic characters map onto Latin-1."""
        assert _sanitize_for_pdf("a – b …") == "a - b ..."


class TestExportToPdfLayout:
    def test_title_period_and_accounts(self, sample_accounts):
        """Happy path: title, period line, then the accounts section."""
        builder = RecordingBuilder()
        pdf = export_to_pdf(FinancialData(accounts=sample_accounts), _options(), lambda: builder)

        assert pdf == b"%PDF-recorded"
        assert builder.texts[0] == ("Financial Report", 20, 20, 20)
        assert builder.texts[1] == ("Period: Jan 1, 2024 - Jan 31, 2024", 20, 30, 12)
        assert builder.texts[2] == ("Accounts Summary", 20, 50, 16)
        assert builder.texts[3] == ("Checking: $1,500.00", 20, 60, 10)
        assert builder.texts[4] == ("Visa: -$250.50", 20, 65, 10)
        assert builder.texts[5] == ("Total Balance: $1,249.50", 20, 75, 12)

    def test_custom_title(self):
        """Happy path: custom title replaces the default."""
        builder = RecordingBuilder()
        export_to_pdf(FinancialData(), _options(custom_title="Q1 Review"), lambda: builder)
        assert builder.strings()[0] == "Q1 Review"

    def test_transactions_grouped_within_range(self, sample_transactions):
        """Happy path: per-category counts and totals, out-of-range rows skipped."""
        builder = RecordingBuilder()
        export_to_pdf(
            FinancialData(transactions=sample_transactions),
            _options(include_accounts=False),
            lambda: builder,
        )
        lines = builder.strings()
        assert "Transactions Summary" in lines
        assert "cat-food: 2 transactions, $180.25" in lines
        assert not any(line.startswith("cat-gifts") for line in lines)

    def test_investments_and_budgets(self, sample_data):
        """Happy path: gain percentage and budget usage lines."""
        builder = RecordingBuilder()
        export_to_pdf(
            sample_data,
            _options(include_investments=True, include_budgets=True),
            lambda: builder,
        )
        lines = builder.strings()
        assert "VTI: $2,300.00 (+15.00%)" in lines
        assert "cat-food: $180.25 / $150.00 (120.2%)" in lines
        assert "cat-housing: $0.00 / $1,000.00 (0.0%)" in lines

    def test_absent_slices_are_skipped(self):
        """Edge case: included but absent data adds no section."""
        builder = RecordingBuilder()
        export_to_pdf(FinancialData(), _options(include_budgets=True), lambda: builder)
        assert builder.strings() == ["Financial Report", "Period: Jan 1, 2024 - Jan 31, 2024"]

    def test_charts_placeholder(self):
        """Happy path: charts produce the placeholder text."""
        builder = RecordingBuilder()
        export_to_pdf(FinancialData(), _options(include_charts=True), lambda: builder)
        assert builder.texts[-1] == (CHART_PLACEHOLDER, 20, 50, 14)

    def test_long_account_list_breaks_pages(self):
        """Edge case: writing past the bottom margin starts a new page at the top."""
        accounts = [Account(id=f"a{i}", name=f"Account {i}", balance=i) for i in range(60)]
        builder = RecordingBuilder()
        export_to_pdf(FinancialData(accounts=accounts), _options(), lambda: builder)

        assert builder.pages >= 2
        assert all(y <= 275 for _, _, y, _ in builder.texts)
        assert any(y == 20 and text.startswith("Account ") for text, _, y, _ in builder.texts)


class TestLogo:
    def test_logo_placed(self):
        """Happy path: logo drawn top right."""
        builder = RecordingBuilder()
        export_to_pdf(FinancialData(), _options(logo_url="logo.png"), lambda: builder)
        assert builder.images == [("logo.png", 150, 10, 40, 20)]

    def test_logo_failure_is_not_fatal(self):
        """Failure: an unloadable logo is skipped and the document still renders."""
        builder = RecordingBuilder(fail_images=True)
        pdf = export_to_pdf(FinancialData(), _options(logo_url="missing.png"), lambda: builder)
        assert pdf == b"%PDF-recorded"


class TestRealDocument:
    def test_fpdf_output(self, sample_data):
        """Happy path: the default builder produces a PDF file."""
        pytest.importorskip("fpdf")
        pdf = export_to_pdf(
            sample_data,
            _options(include_investments=True, include_budgets=True, include_charts=True),
        )
        assert pdf.startswith(b"%PDF")


class TestFpdfLoading:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        reset_cache()
        yield
        reset_cache()

    def test_loaded_once_and_cached(self):
        """Happy path: the first builder imports fpdf2; later builders reuse the cached class."""
        first_cls = MagicMock(name="FPDF")
        replacement_cls = MagicMock(name="FPDF-replacement")
        fake_fpdf = types.ModuleType("fpdf")
        fake_fpdf.FPDF = first_cls

        assert not is_loaded()
        with patch.dict(sys.modules, {"fpdf": fake_fpdf}):
            FpdfDocumentBuilder()
            assert is_loaded()
            fake_fpdf.FPDF = replacement_cls
            FpdfDocumentBuilder()

        assert first_cls.call_count == 2
        first_cls.assert_called_with(orientation="P", unit="mm", format="A4")
        replacement_cls.assert_not_called()

    def test_cache_seeded_directly(self):
        """Edge case: a class placed in the cache is used without importing fpdf2."""
        stub_cls = MagicMock(name="FPDF")
        reset_cache(stub_cls)
        with patch.dict(sys.modules, {"fpdf": None}):
            FpdfDocumentBuilder().text("hello", 20, 20)
        stub_cls.return_value.text.assert_called_once_with(20, 20, "hello")

    def test_missing_library(self):
        """Failure: without fpdf2 the builder raises GenerationError and nothing is cached."""
        with patch.dict(sys.modules, {"fpdf": None}):
            with pytest.raises(GenerationError, match="fpdf2 is required"):
                FpdfDocumentBuilder()
        assert not is_loaded()
