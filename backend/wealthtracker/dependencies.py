"""
FastAPI dependencies

Services are built once at startup and kept on ``app.state``; routers pull
them from the request.
"""

from fastapi import Request

from wealthtracker.services.backup_service import AutomaticBackupService
from wealthtracker.services.custom_report_service import CustomReportService
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.export_store import ExportScheduler, ExportStore
from wealthtracker.services.report_scheduler import ScheduledReportService


def get_export_service(request: Request) -> ExportService:
    return request.app.state.export_service


def get_export_store(request: Request) -> ExportStore:
    return request.app.state.export_store


def get_export_scheduler(request: Request) -> ExportScheduler:
    return request.app.state.export_scheduler


def get_custom_report_service(request: Request) -> CustomReportService:
    return request.app.state.custom_report_service


def get_report_scheduler(request: Request) -> ScheduledReportService:
    return request.app.state.report_scheduler


def get_backup_service(request: Request) -> AutomaticBackupService:
    return request.app.state.backup_service
