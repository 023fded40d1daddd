"""
Tests for the polling reconciliation cycle.
"""

import asyncio
from types import SimpleNamespace

import pytest

from app.config import Settings
from app.jobs.reconciliation_job import (
    ReconciliationJob,
    ReconciliationJobError,
    SyncCycleMetrics,
)
from app.models.domain.sync_domain import RecordAction, RecordOutcome
from app.services.tracker.client import TrackerAPIError


def _settings(**overrides) -> Settings:
    values = {"POLLING_ENABLED": False, "SYNC_PAGE_SIZE": 2, "SYNC_MAX_CONCURRENCY": 2}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _outcome(record_type: str, record, action=RecordAction.CREATED) -> RecordOutcome:
    return RecordOutcome(record_type=record_type, source_id=record.id, action=action)


def _stub_services(job_handler=None, placement_handler=None):
    async def default_job(job):
        return _outcome("job", job)

    async def default_placement(placement):
        return _outcome("placement", placement)

    return (
        SimpleNamespace(sync_job=job_handler or default_job),
        SimpleNamespace(sync_placement=placement_handler or default_placement),
    )


@pytest.mark.asyncio
async def test_full_cycle_syncs_jobs_then_placements(services, fake_tracker, fake_hubspot):
    for i in range(5):
        fake_tracker.add_job(f"J{i}", f"Role {i}")
    fake_tracker.add_candidate("C1", "Ada", "Lovelace")
    fake_tracker.add_placement("P1", "J0", "C1", "Placed Perm")
    fake_tracker.add_placement("P2", "J-unknown", "C1", "Placed Perm")
    fake_tracker.add_placement("P3", "J1", "C1", "Interviewing")

    metrics = await services.reconciliation_job.run_once("manual")

    assert metrics["trigger"] == "manual"
    assert metrics["jobs_processed"] == 5
    assert metrics["jobs_created"] == 5
    assert metrics["placements_processed"] == 3
    assert metrics["placements_created"] == 1
    assert metrics["placements_skipped"] == 2
    assert metrics["skip_reasons"] == {"job_not_synced": 1, "invalid_status": 1}
    assert metrics["candidates_created"] == 1
    assert metrics["errors_count"] == 0
    assert metrics["fatal_error"] is None
    # 5 jobs at page size 2 -> offsets 0, 2, 4; placements -> 0, 2
    assert fake_tracker.page_calls == [
        ("jobs", 2, 0),
        ("jobs", 2, 2),
        ("jobs", 2, 4),
        ("placements", 2, 0),
        ("placements", 2, 2),
    ]


@pytest.mark.asyncio
async def test_missing_candidate_is_counted_as_skip_not_error(services, fake_tracker):
    fake_tracker.add_job("J1", "VP Sales")
    fake_tracker.add_placement("P1", "J1", "C-gone", "Placed Perm")

    metrics = await services.reconciliation_job.run_once("manual")

    assert metrics["placements_skipped"] == 1
    assert metrics["skip_reasons"] == {"candidate_not_found": 1}
    assert metrics["errors_count"] == 0


@pytest.mark.asyncio
async def test_full_page_triggers_one_more_fetch(services, fake_tracker):
    for i in range(4):
        fake_tracker.add_job(f"J{i}", f"Role {i}")

    await services.reconciliation_job.run_once()

    job_pages = [call for call in fake_tracker.page_calls if call[0] == "jobs"]
    assert job_pages == [("jobs", 2, 0), ("jobs", 2, 2), ("jobs", 2, 4)]


@pytest.mark.asyncio
async def test_second_cycle_updates_without_duplicates(services, fake_tracker, fake_hubspot):
    fake_tracker.add_job("J1", "VP Sales")

    await services.reconciliation_job.run_once()
    metrics = await services.reconciliation_job.run_once()

    assert metrics["jobs_updated"] == 1
    assert metrics["jobs_created"] == 0
    assert len(fake_hubspot.records) == 1


@pytest.mark.asyncio
async def test_record_failure_does_not_stop_siblings(fake_tracker):
    for i in range(3):
        fake_tracker.add_job(f"J{i}", f"Role {i}")

    async def flaky_job(job):
        if job.id == "J1":
            raise RuntimeError("HubSpot rejected J1")
        return _outcome("job", job)

    job_sync, placement_sync = _stub_services(job_handler=flaky_job)
    job = ReconciliationJob(fake_tracker, job_sync, placement_sync, config=_settings())

    metrics = await job.run_once()

    assert metrics["jobs_processed"] == 3
    assert metrics["jobs_created"] == 2
    assert metrics["jobs_failed"] == 1
    assert metrics["errors_count"] == 1
    assert metrics["errors"][0]["source_id"] == "J1"
    assert "HubSpot rejected J1" in metrics["errors"][0]["error"]


@pytest.mark.asyncio
async def test_fetch_failure_is_reported_as_fatal(fake_tracker, monkeypatch):
    async def broken_page(limit, offset):
        raise TrackerAPIError("Tracker list_jobs failed (HTTP 503)", status_code=503)

    monkeypatch.setattr(fake_tracker, "list_jobs", broken_page)
    job_sync, placement_sync = _stub_services()
    job = ReconciliationJob(fake_tracker, job_sync, placement_sync, config=_settings())

    metrics = await job.run_once()

    assert "TrackerAPIError" in metrics["fatal_error"]
    assert job.is_running is False
    assert job.health_check()["last_fatal_error"] == metrics["fatal_error"]


@pytest.mark.asyncio
async def test_concurrent_cycle_is_skipped(fake_tracker):
    fake_tracker.add_job("J1", "VP Sales")
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow_job(job):
        started.set()
        await release.wait()
        return _outcome("job", job)

    job_sync, placement_sync = _stub_services(job_handler=slow_job)
    job = ReconciliationJob(fake_tracker, job_sync, placement_sync, config=_settings())

    first = asyncio.create_task(job.run_once())
    await started.wait()

    skipped = await job.run_once()
    assert skipped == {"skipped": True, "reason": "already_running"}
    assert job.trigger_in_background() is False

    release.set()
    metrics = await first
    assert metrics["jobs_processed"] == 1


@pytest.mark.asyncio
async def test_cycle_timeout_reports_partial_results(fake_tracker):
    for i in range(3):
        fake_tracker.add_job(f"J{i}", f"Role {i}")

    async def hanging_job(job):
        if job.id == "J2":
            await asyncio.sleep(10)
        return _outcome("job", job)

    job_sync, placement_sync = _stub_services(job_handler=hanging_job)
    job = ReconciliationJob(
        fake_tracker,
        job_sync,
        placement_sync,
        config=_settings(SYNC_CYCLE_TIMEOUT_SECONDS=0.2),
    )

    metrics = await job.run_once()

    assert metrics["timed_out"] is True
    assert metrics["jobs_created"] == 2
    assert job.is_running is False


@pytest.mark.asyncio
async def test_trigger_in_background_runs_cycle(fake_tracker):
    fake_tracker.add_job("J1", "VP Sales")
    job_sync, placement_sync = _stub_services()
    job = ReconciliationJob(fake_tracker, job_sync, placement_sync, config=_settings())

    assert job.trigger_in_background("manual") is True
    assert job.trigger_in_background("manual") is False

    while job._background_tasks:
        await asyncio.sleep(0.01)

    status = job.get_job_status()
    assert status["is_running"] is False
    assert status["last_run_metrics"]["trigger"] == "manual"
    assert status["last_run_metrics"]["jobs_processed"] == 1


def test_invalid_config_rejected(fake_tracker):
    job_sync, placement_sync = _stub_services()

    with pytest.raises(ReconciliationJobError):
        ReconciliationJob(fake_tracker, job_sync, placement_sync, config=_settings(SYNC_PAGE_SIZE=0))


def test_metrics_record_skip_reason_and_contact_counts():
    metrics = SyncCycleMetrics()
    outcome = RecordOutcome(
        record_type="placement",
        source_id="P1",
        action=RecordAction.SKIPPED,
        skip_reason="job_not_synced",
    )
    placed = RecordOutcome(
        record_type="placement",
        source_id="P2",
        action=RecordAction.UPDATED,
        contact_action=RecordAction.FAILED,
        warnings=["Contact sync failed for candidate C1: boom"],
    )

    metrics.record_outcome(outcome)
    metrics.record_outcome(placed)
    data = metrics.to_dict()

    assert data["placements_processed"] == 2
    assert data["placements_skipped"] == 1
    assert data["placements_updated"] == 1
    assert data["candidates_failed"] == 1
    assert data["skip_reasons"] == {"job_not_synced": 1}
    assert data["warnings"][0]["source_id"] == "P2"
