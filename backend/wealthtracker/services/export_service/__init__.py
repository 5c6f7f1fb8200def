"""
Export Service

Split into focused modules:
- csv_builder: flat and grouped CSV
- document_builder: fpdf2 drawing surface behind the DocumentBuilder interface
- pdf_report: financial summary document
- financial_report: full report (executive summary, budgets, goals) as PDF or CSV
- workbook_builder: multi-sheet XLSX with openpyxl
- interchange: QIF and OFX
- service: ExportService format dispatch and filenames
"""

from wealthtracker.services.export_service.csv_builder import array_to_csv, export_to_csv  # noqa: F401
from wealthtracker.services.export_service.document_builder import (  # noqa: F401
    DocumentBuilder,
    FpdfDocumentBuilder,
    default_document_builder,
)
from wealthtracker.services.export_service.financial_report import (  # noqa: F401
    generate_csv_report,
    generate_pdf_report,
    summarize,
)
from wealthtracker.services.export_service.interchange import export_to_ofx, export_to_qif  # noqa: F401
from wealthtracker.services.export_service.pdf_report import export_to_pdf  # noqa: F401
from wealthtracker.services.export_service.service import ExportService, report_filename  # noqa: F401
from wealthtracker.services.export_service.workbook_builder import export_to_excel  # noqa: F401
