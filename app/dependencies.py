"""
Service wiring.

Builds the clients, sync services, reconciliation job and idempotency ledger
once per process and exposes them to routes through ``app.state``.
"""

from dataclasses import dataclass

from fastapi import Request

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger
from app.jobs.reconciliation_job import ReconciliationJob
from app.services.hubspot.client import HubSpotClient
from app.services.idempotency.store import (
    IdempotencyStore,
    InMemoryIdempotencyStore,
    RedisIdempotencyStore,
)
from app.services.infrastructure.redis_client import RedisClient
from app.services.sync.job_sync_service import JobSyncService
from app.services.sync.placement_sync_service import PlacementSyncService
from app.services.tracker.client import TrackerClient

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    tracker: TrackerClient
    hubspot: HubSpotClient
    job_sync: JobSyncService
    placement_sync: PlacementSyncService
    reconciliation_job: ReconciliationJob
    idempotency_store: IdempotencyStore
    redis_client: RedisClient | None = None

    async def close(self) -> None:
        """Close outbound clients in reverse order of creation."""
        shutdown_errors = []
        for name, closer in (
            ("redis", self.redis_client.close if self.redis_client else None),
            ("hubspot", self.hubspot.close),
            ("tracker", self.tracker.close),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.error("Error closing client", client=name, error=str(e))
                shutdown_errors.append(f"{name}: {e}")

        if shutdown_errors:
            logger.warning("Some clients had shutdown errors", errors=shutdown_errors)


def build_idempotency_store(
    config: Settings, redis_client: RedisClient | None = None
) -> IdempotencyStore:
    backend = config.IDEMPOTENCY_BACKEND.strip().lower()
    if backend == "redis":
        if redis_client is None:
            raise ValueError("IDEMPOTENCY_BACKEND=redis requires a Redis client")
        return RedisIdempotencyStore(
            redis_client,
            max_size=config.IDEMPOTENCY_MAX_SIZE,
            ttl_seconds=config.IDEMPOTENCY_TTL_SECONDS,
        )
    if backend != "memory":
        raise ValueError(f"Unknown IDEMPOTENCY_BACKEND '{backend}'. Expected 'memory' or 'redis'")
    return InMemoryIdempotencyStore(max_size=config.IDEMPOTENCY_MAX_SIZE)


def build_container(config: Settings | None = None) -> ServiceContainer:
    config = config or default_settings

    tracker = TrackerClient(config)
    hubspot = HubSpotClient(config)
    job_sync = JobSyncService(tracker, hubspot, config=config)
    placement_sync = PlacementSyncService(tracker, hubspot, config=config)
    reconciliation_job = ReconciliationJob(tracker, job_sync, placement_sync, config=config)

    redis_client = None
    if config.IDEMPOTENCY_BACKEND.strip().lower() == "redis":
        redis_client = RedisClient(config.REDIS_URL)

    return ServiceContainer(
        settings=config,
        tracker=tracker,
        hubspot=hubspot,
        job_sync=job_sync,
        placement_sync=placement_sync,
        reconciliation_job=reconciliation_job,
        idempotency_store=build_idempotency_store(config, redis_client),
        redis_client=redis_client,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the process-wide service container."""
    return request.app.state.services
