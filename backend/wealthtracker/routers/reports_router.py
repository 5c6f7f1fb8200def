"""
Reports API Router

Custom report definitions, their generated data, scheduled custom reports
and the run history.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import Field, ValidationError as PydanticValidationError

from wealthtracker.dependencies import get_custom_report_service, get_report_scheduler
from wealthtracker.exceptions import AppError
from wealthtracker.schemas.export import Frequency
from wealthtracker.schemas.finance import CamelModel, FinancialData
from wealthtracker.schemas.reporting import CustomReport, DeliveryFormat
from wealthtracker.services.custom_report_service import CustomReportService
from wealthtracker.services.report_scheduler import ScheduledReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


# ----- Request Schemas -----

class ScheduleCreate(CamelModel):
    custom_report_id: str
    report_name: str
    frequency: Frequency
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    time: str = "09:00"
    delivery_format: DeliveryFormat = DeliveryFormat.PDF
    email_recipients: List[str] = Field(default_factory=list)
    enabled: bool = True


class RunRequest(CamelModel):
    data: Optional[FinancialData] = None


# ----- Custom report definitions -----

@router.get("/custom")
async def list_custom_reports(
    service: CustomReportService = Depends(get_custom_report_service),
) -> List[dict]:
    return [r.to_storage() for r in service.get_custom_reports()]


@router.get("/custom/{report_id}")
async def get_custom_report(
    report_id: str,
    service: CustomReportService = Depends(get_custom_report_service),
) -> dict:
    report = service.get_custom_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Custom report not found")
    return report.to_storage()


@router.put("/custom/{report_id}")
async def save_custom_report(
    report_id: str,
    body: CustomReport,
    service: CustomReportService = Depends(get_custom_report_service),
) -> dict:
    """Create or replace a custom report definition."""
    report = service.save_custom_report(body.model_copy(update={"id": report_id}))
    return report.to_storage()


@router.delete("/custom/{report_id}")
async def delete_custom_report(
    report_id: str,
    service: CustomReportService = Depends(get_custom_report_service),
) -> dict:
    if not service.delete_custom_report(report_id):
        raise HTTPException(status_code=404, detail="Custom report not found")
    return {"detail": "Custom report deleted"}


@router.post("/custom/{report_id}/data")
async def generate_custom_report_data(
    report_id: str,
    body: Optional[RunRequest] = None,
    service: CustomReportService = Depends(get_custom_report_service),
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    """Per-component data for a custom report, from posted or stored records."""
    report = service.get_custom_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Custom report not found")
    data = body.data if body and body.data else scheduler.load_financial_data()
    return service.generate_report_data(report, data)


# ----- Scheduled custom reports -----

@router.get("/scheduled")
async def list_scheduled_reports(
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> List[dict]:
    return [r.to_storage() for r in scheduler.get_scheduled_reports()]


@router.post("/scheduled")
async def create_scheduled_report(
    body: ScheduleCreate,
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    report = scheduler.create_scheduled_report(**body.model_dump())
    return report.to_storage()


@router.get("/scheduled/{report_id}")
async def get_scheduled_report(
    report_id: str,
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    report = scheduler.get_scheduled_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled report not found")
    return report.to_storage()


@router.patch("/scheduled/{report_id}")
async def update_scheduled_report(
    report_id: str,
    updates: Dict[str, Any] = Body(...),
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    try:
        report = scheduler.update_scheduled_report(report_id, updates)
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled report not found")
    return report.to_storage()


@router.delete("/scheduled/{report_id}")
async def delete_scheduled_report(
    report_id: str,
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    if not scheduler.delete_scheduled_report(report_id):
        raise HTTPException(status_code=404, detail="Scheduled report not found")
    return {"detail": "Scheduled report deleted"}


@router.post("/scheduled/{report_id}/run")
async def run_scheduled_report(
    report_id: str,
    body: Optional[RunRequest] = None,
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> dict:
    """Run a scheduled report now. The run is recorded and advances its schedule."""
    report = scheduler.get_scheduled_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled report not found")

    try:
        result = await scheduler.run_scheduled_report(report, body.data if body else None)
    except AppError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Report run failed: {e}") from e

    return {
        "success": True,
        "filename": result.filename,
        "mimeType": result.mime_type,
        "size": len(result.data),
    }


@router.get("/history")
async def get_report_history(
    report_id: Optional[str] = Query(None, alias="reportId"),
    scheduler: ScheduledReportService = Depends(get_report_scheduler),
) -> List[dict]:
    return [h.to_storage() for h in scheduler.get_report_history(report_id)]
