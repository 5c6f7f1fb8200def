"""
Export Service: format dispatch.

Part of the export_service package. Picks the generator for the requested
format and names the resulting file.
"""

import json
import logging
import re
from typing import List, Optional

from wealthtracker.constants import MIME_TYPES
from wealthtracker.exceptions import GenerationError, MissingDataError, ValidationError
from wealthtracker.schemas.export import ExportFormat, ExportOptions, ExportResult
from wealthtracker.schemas.finance import FinancialData, FinancialRecord
from wealthtracker.services.export_service.csv_builder import export_to_csv
from wealthtracker.services.export_service.document_builder import DocumentBuilderFactory
from wealthtracker.services.export_service.financial_report import (
    generate_csv_report,
    generate_pdf_report,
    report_title,
)
from wealthtracker.services.export_service.interchange import export_to_ofx, export_to_qif
from wealthtracker.services.export_service.pdf_report import export_to_pdf
from wealthtracker.services.export_service.workbook_builder import export_to_excel
from wealthtracker.timeutils import Clock, date_stamp, iso_z, utcnow

logger = logging.getLogger(__name__)

_FILENAME_PREFIXES = {
    ExportFormat.CSV: "export",
    ExportFormat.PDF: "financial-report",
    ExportFormat.XLSX: "financial-data",
    ExportFormat.JSON: "backup",
    ExportFormat.QIF: "transactions",
    ExportFormat.OFX: "transactions",
}

REPORT_FORMATS = (ExportFormat.PDF, ExportFormat.CSV, ExportFormat.XLSX)


def report_filename(title: str, ext: str) -> str:
    """Filename from a report title: every non-alphanumeric becomes ``_``."""
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', title)}.{ext}"


class ExportService:
    """
    Serializes financial data into one of the six export formats.

    Stateless apart from the injected clock (filenames, OFX timestamps) and
    the document builder factory used for PDFs.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        builder_factory: Optional[DocumentBuilderFactory] = None,
    ):
        self._clock = clock or utcnow
        self._builder_factory = builder_factory

    def filename_for(self, export_format: ExportFormat) -> str:
        return f"{_FILENAME_PREFIXES[export_format]}-{date_stamp(self._clock())}.{export_format.value}"

    def export_to_csv(self, items: List[FinancialRecord], options: Optional[ExportOptions] = None) -> str:
        return export_to_csv(items, options)

    def export_to_pdf(self, data: FinancialData, options: ExportOptions) -> bytes:
        return export_to_pdf(data, options, self._builder_factory)

    def export_to_excel(self, data: FinancialData, options: ExportOptions) -> bytes:
        return export_to_excel(data, options, now=self._clock())

    def export_to_json(self, data: FinancialData) -> str:
        return json.dumps(data.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2)

    def export_to_qif(self, data: FinancialData) -> str:
        if data.transactions is None or data.accounts is None:
            raise MissingDataError("QIF export requires transactions and accounts data")
        return export_to_qif(data.transactions, data.accounts)

    def export_to_ofx(self, data: FinancialData) -> str:
        if data.transactions is None or data.accounts is None:
            raise MissingDataError("OFX export requires transactions and accounts data")
        return export_to_ofx(data.transactions, data.accounts, now=self._clock())

    def export_data(self, data: FinancialData, options: ExportOptions) -> ExportResult:
        """
        Generate ``data`` in ``options.format``.

        CSV flattens the transactions (or the accounts when no transactions
        were supplied). QIF and OFX raise MissingDataError without both
        transactions and accounts. Any other generator failure surfaces as
        GenerationError.
        """
        export_format = options.format
        if export_format not in _FILENAME_PREFIXES:
            raise ValidationError(f"Unsupported export format: {export_format}")

        try:
            if export_format == ExportFormat.CSV:
                content = self.export_to_csv(data.transactions or data.accounts or [], options)
            elif export_format == ExportFormat.PDF:
                content = self.export_to_pdf(data, options)
            elif export_format == ExportFormat.XLSX:
                content = self.export_to_excel(data, options)
            elif export_format == ExportFormat.JSON:
                content = self.export_to_json(data)
            elif export_format == ExportFormat.QIF:
                content = self.export_to_qif(data)
            else:
                content = self.export_to_ofx(data)
        except (MissingDataError, GenerationError):
            raise
        except Exception as e:
            logger.error(f"{export_format.value.upper()} export failed: {e}", exc_info=True)
            raise GenerationError(f"{export_format.value.upper()} export failed: {e}") from e

        result = ExportResult(
            content=content,
            filename=self.filename_for(export_format),
            mime_type=MIME_TYPES[export_format.value],
        )
        logger.info(
            f"Data exported: format={export_format.value} filename={result.filename} "
            f"transactions={len(data.transactions or [])} accounts={len(data.accounts or [])} "
            f"range={iso_z(options.start_date)}..{iso_z(options.end_date)}"
        )
        return result

    def generate_report(self, data: FinancialData, options: ExportOptions) -> ExportResult:
        """
        Generate the full financial report in ``options.format``.

        PDF and CSV carry the executive summary followed by the budget, goal
        and transaction sections; XLSX is the multi-sheet workbook. The file
        is named after the report title rather than the date.
        """
        export_format = options.format
        if export_format not in REPORT_FORMATS:
            raise ValidationError(f"Unsupported report format: {export_format.value}")

        try:
            if export_format == ExportFormat.PDF:
                content = generate_pdf_report(data, options, self._builder_factory)
            elif export_format == ExportFormat.CSV:
                content = generate_csv_report(data, options, now=self._clock())
            else:
                content = self.export_to_excel(data, options)
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"{export_format.value.upper()} report failed: {e}", exc_info=True)
            raise GenerationError(f"{export_format.value.upper()} report failed: {e}") from e

        result = ExportResult(
            content=content,
            filename=report_filename(report_title(options), export_format.value),
            mime_type=MIME_TYPES[export_format.value],
        )
        logger.info(f"Report generated: format={export_format.value} filename={result.filename}")
        return result
