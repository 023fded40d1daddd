"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.dependencies import build_container
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.jobs.reconciliation_job import start_reconciliation_scheduler

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


async def run_reconciliation_scheduler() -> None:
    """Poll Tracker on the configured interval until the process stops."""
    services = build_container(settings)
    if services.redis_client is not None:
        await services.redis_client.initialize()
    try:
        await start_reconciliation_scheduler(services.reconciliation_job)
    finally:
        await services.close()


async def run_reconciliation_once() -> None:
    """Run a single reconciliation cycle and exit."""
    services = build_container(settings)
    if services.redis_client is not None:
        await services.redis_client.initialize()
    try:
        metrics = await services.reconciliation_job.run_once("worker")
        logger.info(
            "Single reconciliation cycle finished",
            errors_count=metrics.get("errors_count", 0),
            fatal_error=metrics.get("fatal_error"),
        )
    finally:
        await services.close()


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "reconciliation": run_reconciliation_scheduler,
    "reconciliation_once": run_reconciliation_once,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "reconciliation").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
