"""
Exports API Router

One-off exports in any supported format, export templates and simple
scheduled exports.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.dependencies import get_export_scheduler, get_export_service, get_export_store
from wealthtracker.schemas.export import ExportOptions, Frequency
from wealthtracker.schemas.finance import CamelModel, FinancialData
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.export_store import ExportScheduler, ExportStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exports", tags=["exports"])


# ----- Request Schemas -----

class ExportRequest(CamelModel):
    data: FinancialData
    options: ExportOptions


class TemplateCreate(CamelModel):
    name: str
    description: str = ""
    options: ExportOptions
    is_default: bool = False


class ScheduledExportCreate(CamelModel):
    name: str
    frequency: Frequency
    options: ExportOptions
    email: str = ""
    is_active: bool = True


def _invalid(e: PydanticValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


# ----- Export -----

@router.post("")
async def export_data(
    body: ExportRequest,
    export_service: ExportService = Depends(get_export_service),
):
    """Generate an export and return it as a file download."""
    result = export_service.export_data(body.data, body.options)
    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.post("/report")
async def generate_report(
    body: ExportRequest,
    export_service: ExportService = Depends(get_export_service),
):
    """Full financial report (PDF, CSV or XLSX) named after its title."""
    result = export_service.generate_report(body.data, body.options)
    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


# ----- Templates -----

@router.get("/templates")
async def list_templates(store: ExportStore = Depends(get_export_store)) -> List[dict]:
    return [t.to_storage() for t in store.get_templates()]


@router.post("/templates")
async def create_template(body: TemplateCreate, store: ExportStore = Depends(get_export_store)) -> dict:
    template = store.create_template(body.name, body.options, body.description, body.is_default)
    return template.to_storage()


@router.get("/templates/{template_id}")
async def get_template(template_id: str, store: ExportStore = Depends(get_export_store)) -> dict:
    template = store.get_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.to_storage()


@router.put("/templates/{template_id}")
async def update_template(
    template_id: str,
    updates: Dict[str, Any] = Body(...),
    store: ExportStore = Depends(get_export_store),
) -> dict:
    try:
        template = store.update_template(template_id, updates)
    except PydanticValidationError as e:
        raise _invalid(e) from e
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.to_storage()


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str, store: ExportStore = Depends(get_export_store)) -> dict:
    if not store.delete_template(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"detail": "Template deleted"}


# ----- Scheduled exports -----

@router.get("/scheduled")
async def list_scheduled_exports(store: ExportStore = Depends(get_export_store)) -> List[dict]:
    return [r.to_storage() for r in store.get_scheduled_reports()]


@router.get("/scheduled/due")
async def list_due_exports(store: ExportStore = Depends(get_export_store)) -> List[dict]:
    return [r.to_storage() for r in store.get_due_reports()]


@router.post("/scheduled")
async def create_scheduled_export(
    body: ScheduledExportCreate,
    store: ExportStore = Depends(get_export_store),
) -> dict:
    report = store.create_scheduled_report(
        body.name, body.frequency, body.options, email=body.email, is_active=body.is_active
    )
    return report.to_storage()


@router.get("/scheduled/{report_id}")
async def get_scheduled_export(report_id: str, store: ExportStore = Depends(get_export_store)) -> dict:
    report = store.get_scheduled_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled export not found")
    return report.to_storage()


@router.put("/scheduled/{report_id}")
async def update_scheduled_export(
    report_id: str,
    updates: Dict[str, Any] = Body(...),
    store: ExportStore = Depends(get_export_store),
) -> dict:
    try:
        report = store.update_scheduled_report(report_id, updates)
    except PydanticValidationError as e:
        raise _invalid(e) from e
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled export not found")
    return report.to_storage()


@router.delete("/scheduled/{report_id}")
async def delete_scheduled_export(report_id: str, store: ExportStore = Depends(get_export_store)) -> dict:
    if not store.delete_scheduled_report(report_id):
        raise HTTPException(status_code=404, detail="Scheduled export not found")
    return {"detail": "Scheduled export deleted"}


@router.post("/scheduled/{report_id}/send")
async def send_scheduled_export(
    report_id: str,
    store: ExportStore = Depends(get_export_store),
    scheduler: ExportScheduler = Depends(get_export_scheduler),
) -> dict:
    """Deliver a scheduled export now and advance its schedule."""
    report = store.get_scheduled_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Scheduled export not found")
    if not report.is_active:
        raise HTTPException(status_code=400, detail="Scheduled export is paused")

    sent = await scheduler.deliver(report)
    updated = store.get_scheduled_report(report_id)
    return {"sent": sent, "report": updated.to_storage() if updated else None}
