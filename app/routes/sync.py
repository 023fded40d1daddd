"""
Manual sync trigger and status endpoints (admin/testing).
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import ServiceContainer, get_container
from app.infrastructure.observability.logging import get_logger
from app.models.api.sync_response import ManualSyncResponse, SyncStatusResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/manual", status_code=202, response_model=ManualSyncResponse)
async def trigger_manual_sync(services: ServiceContainer = Depends(get_container)):
    """Start a reconciliation cycle in the background and return immediately."""
    logger.info("Manual sync triggered via API")

    started = services.reconciliation_job.trigger_in_background("manual")
    response = ManualSyncResponse(
        status="accepted" if started else "already_running",
        message="Manual sync initiated" if started else "A sync cycle is already running",
        timestamp=datetime.now(UTC).isoformat(),
    )
    return JSONResponse(status_code=202, content=response.model_dump())


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(services: ServiceContainer = Depends(get_container)):
    return services.reconciliation_job.get_job_status()
