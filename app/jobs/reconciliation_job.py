"""
Reconciliation job: full Tracker -> HubSpot sync cycle.

Pages through every Tracker job, then every placement, and runs the same
per-record pipelines the webhook uses. One record's failure is recorded and
never stops its siblings. Only one cycle runs at a time; a cycle requested
while another is running is skipped, not queued.
"""

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.sync_domain import MatchConfidence, RecordAction, RecordOutcome
from app.services.sync.job_sync_service import JobSyncService
from app.services.sync.placement_sync_service import PlacementSyncService
from app.services.tracker.client import TrackerClient

logger = get_logger(__name__)

MAX_REPORTED_ERRORS = 200


class ReconciliationJobError(Exception):
    """Custom exception for reconciliation job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class SyncCycleMetrics:
    """Counters and error list for one sync cycle."""

    def __init__(self):
        self.reset()

    def reset(self, trigger: str = "scheduled"):
        """Reset all metrics for new cycle."""
        self.trigger = trigger
        self.start_time = datetime.now(UTC)
        self.total_duration_seconds = 0.0
        self.jobs_processed = 0
        self.jobs_created = 0
        self.jobs_updated = 0
        self.jobs_matched = 0
        self.jobs_ambiguous = 0
        self.jobs_failed = 0
        self.placements_processed = 0
        self.placements_created = 0
        self.placements_updated = 0
        self.placements_skipped = 0
        self.placements_failed = 0
        self.candidates_created = 0
        self.candidates_updated = 0
        self.candidates_failed = 0
        self.associations_failed = 0
        self.skip_reasons: Counter[str] = Counter()
        self.errors: list[dict] = []
        self.warnings: list[dict] = []
        self.timed_out = False
        self.cancelled = False
        self.fatal_error: str | None = None

    def record_outcome(self, outcome: RecordOutcome):
        """Fold one record outcome into the counters."""
        prefix = "jobs" if outcome.record_type == "job" else "placements"
        self._bump(f"{prefix}_processed")

        if outcome.action == RecordAction.SKIPPED:
            self._bump(f"{prefix}_skipped")
            self.skip_reasons[outcome.skip_reason or "unknown"] += 1
        elif outcome.action in (RecordAction.CREATED, RecordAction.UPDATED):
            self._bump(f"{prefix}_{outcome.action.value}")

        if outcome.match is not None:
            if outcome.match.matched:
                self.jobs_matched += 1
            elif outcome.match.confidence == MatchConfidence.AMBIGUOUS:
                self.jobs_ambiguous += 1

        if outcome.contact_action is not None:
            self._bump(f"candidates_{outcome.contact_action.value}")

        self.associations_failed += len(outcome.failed_associations)

        for warning in outcome.warnings:
            self.warnings.append(
                {"record_type": outcome.record_type, "source_id": outcome.source_id, "warning": warning}
            )

    def record_error(self, record_type: str, source_id: str, error: str):
        """Record a record-level failure (the record was not synced)."""
        prefix = "jobs" if record_type == "job" else "placements"
        self._bump(f"{prefix}_processed")
        self._bump(f"{prefix}_failed")

        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(
                {
                    "record_type": record_type,
                    "source_id": source_id,
                    "error": error,
                    "timestamp": datetime.now(UTC).isoformat(),
                }
            )

    def _bump(self, name: str):
        if hasattr(self, name):
            setattr(self, name, getattr(self, name) + 1)

    def finalize(self):
        """Finalize metrics and calculate totals."""
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging and API responses."""
        return {
            "job_run": "reconciliation",
            "trigger": self.trigger,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "jobs_processed": self.jobs_processed,
            "jobs_created": self.jobs_created,
            "jobs_updated": self.jobs_updated,
            "jobs_matched": self.jobs_matched,
            "jobs_ambiguous": self.jobs_ambiguous,
            "jobs_failed": self.jobs_failed,
            "placements_processed": self.placements_processed,
            "placements_created": self.placements_created,
            "placements_updated": self.placements_updated,
            "placements_skipped": self.placements_skipped,
            "placements_failed": self.placements_failed,
            "candidates_created": self.candidates_created,
            "candidates_updated": self.candidates_updated,
            "candidates_failed": self.candidates_failed,
            "associations_failed": self.associations_failed,
            "skip_reasons": dict(self.skip_reasons),
            "timed_out": self.timed_out,
            "cancelled": self.cancelled,
            "fatal_error": self.fatal_error,
            "errors_count": len(self.errors),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


RecordHandler = Callable[[Any], Awaitable[RecordOutcome]]
PageFetcher = Callable[[int, int], Awaitable[list[Any]]]


class ReconciliationJob:
    """
    Drives full reconciliation cycles (polling mode).

    Jobs are synced before placements because placements are only written
    for jobs that already exist in HubSpot.
    """

    def __init__(
        self,
        tracker: TrackerClient,
        job_sync: JobSyncService,
        placement_sync: PlacementSyncService,
        config: Settings | None = None,
    ):
        self.settings = config or default_settings
        self.tracker = tracker
        self.job_sync = job_sync
        self.placement_sync = placement_sync
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_metrics: dict | None = None
        self.job_metrics = SyncCycleMetrics()
        self._background_tasks: set[asyncio.Task] = set()
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate job configuration."""
        if self.settings.SYNC_PAGE_SIZE < 1:
            raise ReconciliationJobError("SYNC_PAGE_SIZE must be at least 1", recoverable=False)
        if self.settings.SYNC_MAX_CONCURRENCY < 1:
            raise ReconciliationJobError("SYNC_MAX_CONCURRENCY must be at least 1", recoverable=False)

        if self.settings.POLLING_INTERVAL_HOURS < 1:
            logger.warning(
                "Reconciliation interval is very short",
                interval_hours=self.settings.POLLING_INTERVAL_HOURS,
            )

    async def run_once(self, trigger: str = "scheduled") -> dict:
        """
        Run a single reconciliation cycle.

        A cycle-level failure (for example the first page fetch exhausting its
        retries) ends the cycle early and is reported as ``fatal_error``; it
        is never raised. A configured cycle timeout cancels in-flight calls
        and reports the partial results with ``timed_out``.

        Returns:
            Dict: Cycle metrics, or {"skipped": True} when a cycle is already running
        """
        if self.is_running:
            logger.warning("Sync already in progress, skipping this cycle", trigger=trigger)
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        self.job_metrics.reset(trigger)
        logger.info("Starting reconciliation cycle", trigger=trigger)

        try:
            timeout = self.settings.SYNC_CYCLE_TIMEOUT_SECONDS
            if timeout:
                await asyncio.wait_for(self._run_cycle(), timeout=timeout)
            else:
                await self._run_cycle()

        except TimeoutError:
            self.job_metrics.timed_out = True
            logger.warning(
                "Reconciliation cycle timed out, reporting partial results",
                timeout_seconds=self.settings.SYNC_CYCLE_TIMEOUT_SECONDS,
            )
        except asyncio.CancelledError:
            self.job_metrics.cancelled = True
            logger.warning("Reconciliation cycle cancelled")
            raise
        except Exception as e:
            self.job_metrics.fatal_error = f"{type(e).__name__}: {e}"
            logger.error(
                "Fatal error during reconciliation cycle",
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            self.last_metrics = self.job_metrics.to_dict()
            self.is_running = False

        logger.info(
            "Reconciliation cycle completed",
            **{k: v for k, v in self.last_metrics.items() if k not in ("errors", "warnings")},
        )
        if self.job_metrics.errors:
            logger.warning("Sync completed with errors", errors_count=len(self.job_metrics.errors))

        return self.last_metrics

    def trigger_in_background(self, trigger: str = "manual") -> bool:
        """
        Start a cycle without waiting for it.

        Returns:
            bool: False when a cycle is already running
        """
        if self.is_running or self._background_tasks:
            return False

        task = asyncio.create_task(self.run_once(trigger))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return True

    async def _run_cycle(self) -> None:
        await self._sync_collection("job", self.tracker.list_jobs, self.job_sync.sync_job)
        await self._sync_collection(
            "placement", self.tracker.list_placements, self.placement_sync.sync_placement
        )

    async def _sync_collection(
        self, record_type: str, fetch_page: PageFetcher, handler: RecordHandler
    ) -> None:
        """Page through a Tracker collection until a short page signals the end."""
        page_size = self.settings.SYNC_PAGE_SIZE
        semaphore = asyncio.Semaphore(self.settings.SYNC_MAX_CONCURRENCY)
        offset = 0

        while True:
            records = await fetch_page(page_size, offset)
            if not records:
                break

            logger.info(
                "Processing page",
                record_type=record_type,
                offset=offset,
                page_count=len(records),
            )

            await asyncio.gather(
                *(
                    self._process_record_with_semaphore(semaphore, record_type, record, handler)
                    for record in records
                )
            )

            offset += len(records)
            if len(records) < page_size:
                break

    async def _process_record_with_semaphore(
        self,
        semaphore: asyncio.Semaphore,
        record_type: str,
        record: Any,
        handler: RecordHandler,
    ) -> None:
        async with semaphore:
            await self._process_record(record_type, record, handler)

    async def _process_record(self, record_type: str, record: Any, handler: RecordHandler) -> None:
        source_id = getattr(record, "id", "unknown")
        try:
            outcome = await handler(record)
            self.job_metrics.record_outcome(outcome)
        except Exception as e:
            error_msg = f"Error syncing {record_type} {source_id}: {type(e).__name__}: {e}"
            logger.error(
                "Record sync failed",
                record_type=record_type,
                source_id=source_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.job_metrics.record_error(record_type, source_id, error_msg)

    def get_job_status(self) -> dict:
        """
        Get current job status and metrics.

        Returns:
            Dict: Current job status information
        """
        return {
            "job_name": "reconciliation",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_hours": self.settings.POLLING_INTERVAL_HOURS,
            "polling_enabled": self.settings.POLLING_ENABLED,
            "page_size": self.settings.SYNC_PAGE_SIZE,
            "max_concurrency": self.settings.SYNC_MAX_CONCURRENCY,
            "last_run_metrics": self.last_metrics,
        }

    def health_check(self) -> dict:
        """
        Health check for the reconciliation job.

        Returns:
            Dict: Health status and configuration
        """
        now = datetime.now(UTC)
        overdue_threshold_seconds = self.settings.POLLING_INTERVAL_HOURS * 3600 * 2
        is_overdue = (
            self.settings.POLLING_ENABLED
            and self.last_run_time is not None
            and (now - self.last_run_time).total_seconds() > overdue_threshold_seconds
        )

        health_status = {
            "healthy": not is_overdue,
            "service": "reconciliation_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
            "last_fatal_error": (self.last_metrics or {}).get("fatal_error"),
        }

        if is_overdue:
            overdue_minutes = (now - self.last_run_time).total_seconds() / 60
            health_status["warning"] = f"Job overdue, last run {overdue_minutes:.1f} minutes ago"

        return health_status


async def start_reconciliation_scheduler(job: ReconciliationJob) -> None:
    """
    Run a cycle immediately, then every POLLING_INTERVAL_HOURS.

    Used from the API lifespan when polling is enabled, or from the worker
    process. Errors are logged and the loop carries on.
    """
    interval_seconds = job.settings.POLLING_INTERVAL_HOURS * 3600
    logger.info(
        "Starting reconciliation scheduler", interval_hours=job.settings.POLLING_INTERVAL_HOURS
    )

    while True:
        try:
            await job.run_once("scheduled")
        except Exception as e:
            logger.error(
                "Error in reconciliation scheduler", error=str(e), error_type=type(e).__name__
            )

        await asyncio.sleep(interval_seconds)
