"""
Backups API Router

Automatic backup configuration, manual runs, the stored archives and the
backup history.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.constants import MIME_TYPES
from wealthtracker.dependencies import get_backup_service
from wealthtracker.services.backup_service import AutomaticBackupService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backups", tags=["backups"])


@router.get("/config")
async def get_backup_config(service: AutomaticBackupService = Depends(get_backup_service)) -> dict:
    return service.get_backup_config().to_storage()


@router.patch("/config")
async def update_backup_config(
    updates: Dict[str, Any] = Body(...),
    service: AutomaticBackupService = Depends(get_backup_service),
) -> dict:
    try:
        config = await service.update_backup_config(updates)
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return config.to_storage()


@router.post("/run")
async def run_backup(service: AutomaticBackupService = Depends(get_backup_service)) -> dict:
    """Run a backup now with the current config (a no-op while backups are disabled)."""
    if not service.get_backup_config().enabled:
        raise HTTPException(status_code=400, detail="Automatic backups are disabled")
    success = await service.perform_backup()
    return {"success": success}


@router.get("/history")
async def get_backup_history(service: AutomaticBackupService = Depends(get_backup_service)) -> List[dict]:
    return [h.to_storage() for h in service.get_backup_history()]


@router.get("")
async def list_backups(service: AutomaticBackupService = Depends(get_backup_service)) -> List[dict]:
    return [b.to_storage() for b in service.get_stored_backups()]


@router.get("/{backup_id}/download")
async def download_backup(backup_id: int, service: AutomaticBackupService = Depends(get_backup_service)):
    filename, data = service.download_backup(backup_id)
    extension = filename.rsplit(".", 1)[-1]
    return Response(
        content=data,
        media_type=MIME_TYPES.get(extension, "application/octet-stream"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{backup_id}")
async def delete_backup(backup_id: int, service: AutomaticBackupService = Depends(get_backup_service)) -> dict:
    if not service.delete_backup(backup_id):
        raise HTTPException(status_code=404, detail="Backup not found")
    return {"detail": "Backup deleted"}
