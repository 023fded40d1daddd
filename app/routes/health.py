# app/routes/health.py
"""
Health check endpoints: liveness with operating mode, and readiness.
"""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from app.dependencies import ServiceContainer, get_container
from app.infrastructure.observability.logging import log_health_check
from app.models.api.sync_response import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(services: ServiceContainer = Depends(get_container)):
    """Basic health check - always returns 200 if app is running."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC).isoformat(),
        mode=services.settings.operating_mode(),
    )


@router.get("/readyz")
async def readyz(services: ServiceContainer = Depends(get_container)):
    """
    Readiness check: configuration, reconciliation job and (when used) Redis.
    """
    settings = services.settings
    checks = {}
    overall_ok = True

    # 1) Configuration checks
    config_issues = []
    if not settings.HUBSPOT_ACCESS_TOKEN:
        config_issues.append("HUBSPOT_ACCESS_TOKEN not set")
    if not settings.TRACKER_API_KEY:
        config_issues.append("TRACKER_API_KEY not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
        "mode": settings.operating_mode(),
        "matching_mode": settings.MATCHING_MODE,
    }
    overall_ok = overall_ok and not config_issues

    # 2) Reconciliation job
    job_health = services.reconciliation_job.health_check()
    checks["reconciliation_job"] = {"ok": job_health["healthy"], **job_health}
    overall_ok = overall_ok and job_health["healthy"]

    # 3) Redis health check (only with the Redis idempotency backend)
    if services.redis_client is not None:
        t0 = time.time()
        try:
            redis_ok = await services.redis_client.ping()
            latency_ms = round((time.time() - t0) * 1000, 1)
            checks["redis"] = {"ok": bool(redis_ok), "latency_ms": latency_ms}
        except Exception as e:
            latency_ms = round((time.time() - t0) * 1000, 1)
            checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}", "latency_ms": latency_ms}
        log_health_check(
            "redis", checks["redis"]["ok"], latency_ms, error=checks["redis"].get("error")
        )
        overall_ok = overall_ok and checks["redis"]["ok"]

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
