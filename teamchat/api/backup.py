"""Backup API router — manual runs, status and configuration checks."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from teamchat.schemas.schemas import BackupRequest, BackupTestRequest
from teamchat.services.backup_service import BackupService, backup_service
from teamchat.core.security import require_admin
from teamchat.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backup", tags=["backup"])


def get_backup_service() -> BackupService:
    return backup_service


@router.post("/")
async def run_backup(
    body: Optional[BackupRequest] = None,
    service: BackupService = Depends(get_backup_service),
    admin: User = Depends(require_admin),
):
    """Run a backup now. Responds 200 on success and 500 with the outcome on failure."""
    body = body or BackupRequest()
    logger.info(
        "Manual backup requested by %s (method: %s, retry: %s)",
        admin.username, body.method.value, body.retry,
    )
    if body.retry:
        outcome = await run_in_threadpool(service.perform_backup_with_retry, body.method, body.max_retries)
    else:
        outcome = await run_in_threadpool(service.perform_backup, body.method)
    return JSONResponse(status_code=200 if outcome.success else 500, content=outcome.to_dict())


@router.get("/status")
async def backup_status(
    service: BackupService = Depends(get_backup_service),
    admin: User = Depends(require_admin),
):
    return {"success": True, "data": service.status()}


@router.post("/test")
async def test_backup_configuration(
    body: Optional[BackupTestRequest] = None,
    service: BackupService = Depends(get_backup_service),
    admin: User = Depends(require_admin),
):
    """Report which sinks have the settings they need, without uploading anything."""
    body = body or BackupTestRequest()
    logger.info("Backup configuration test requested by %s (method: %s)", admin.username, body.method.value)
    return {"success": True, "data": service.test_configuration(body.method)}
