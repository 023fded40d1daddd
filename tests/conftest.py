import itertools

import pytest

from app.config import Settings
from app.dependencies import ServiceContainer
from app.jobs.reconciliation_job import ReconciliationJob
from app.models.domain.hubspot_domain import (
    AssociationKind,
    AssociationResult,
    AssociationStatus,
    HubSpotDeal,
    UpsertResult,
)
from app.models.domain.tracker_domain import TrackerCandidate, TrackerJob, TrackerPlacement
from app.services.hubspot.client import COMPANIES, DEALS, HubSpotAPIError, HubSpotSearchTruncatedError
from app.services.idempotency.store import InMemoryIdempotencyStore
from app.services.sync.job_sync_service import JobSyncService
from app.services.sync.placement_sync_service import PlacementSyncService
from app.services.tracker.client import TrackerAPIError


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, *keys: str) -> bool:
        removed = [self.store.pop(key, None) for key in keys]
        return any(value is not None for value in removed)

    async def push_bounded(self, list_key: str, value: str, max_len: int) -> list[str]:
        items = self.lists.setdefault(list_key, [])
        items.append(value)
        overflow = len(items) - max_len
        if overflow <= 0:
            return []
        evicted, self.lists[list_key] = items[:overflow], items[overflow:]
        return evicted

    async def ping(self) -> bool:
        return True


class FakeTracker:
    """In-memory Tracker API keyed by id, paged in insertion order."""

    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.placements: dict[str, dict] = {}
        self.candidates: dict[str, dict] = {}
        self.page_calls: list[tuple[str, int, int]] = []
        self.closed = False

    def add_job(self, job_id: str, name: str, **fields) -> dict:
        data = {"id": job_id, "name": name, "status": "Open", **fields}
        self.jobs[job_id] = data
        return data

    def add_candidate(self, candidate_id: str, first: str, last: str, **fields) -> dict:
        data = {"id": candidate_id, "firstName": first, "lastName": last, **fields}
        self.candidates[candidate_id] = data
        return data

    def add_placement(self, placement_id: str, job_id: str, candidate_id: str, status: str, **fields):
        data = {
            "id": placement_id,
            "jobId": job_id,
            "candidateId": candidate_id,
            "status": status,
            **fields,
        }
        self.placements[placement_id] = data
        return data

    @staticmethod
    def _lookup(collection: dict, key: str, kind: str) -> dict:
        if key not in collection:
            raise TrackerAPIError(f"Tracker get_{kind} failed (HTTP 404)", status_code=404, retryable=False)
        return collection[key]

    async def list_jobs(self, limit: int, offset: int) -> list[TrackerJob]:
        self.page_calls.append(("jobs", limit, offset))
        page = list(self.jobs.values())[offset : offset + limit]
        return [TrackerJob.from_api(item) for item in page]

    async def list_placements(self, limit: int, offset: int) -> list[TrackerPlacement]:
        self.page_calls.append(("placements", limit, offset))
        page = list(self.placements.values())[offset : offset + limit]
        return [TrackerPlacement.from_api(item) for item in page]

    async def get_job(self, job_id: str):
        return TrackerJob.from_api(self._lookup(self.jobs, job_id, "job"))

    async def get_placement(self, placement_id: str):
        return TrackerPlacement.from_api(self._lookup(self.placements, placement_id, "placement"))

    async def get_candidate(self, candidate_id: str):
        return TrackerCandidate.from_api(self._lookup(self.candidates, candidate_id, "candidate"))

    async def close(self):
        self.closed = True


class FakeHubSpot:
    """
    In-memory HubSpot: records keyed by (object type, natural id), deals and
    companies seeded by tests, associations recorded per directed edge.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._ids = itertools.count(1000)
        self.records: dict[tuple[str, str], dict] = {}
        self.deals: dict[str, dict] = {}
        self.companies: dict[str, str] = {}
        self.deal_companies: dict[str, list[str]] = {}
        self.associations: set[tuple[str, str, str]] = set()
        self.fail_upserts_for: set[str] = set()
        self.fail_deal_search = False
        self.truncate_deal_search = False
        self.upsert_calls: list[tuple[str, str]] = []
        self.closed = False

    def add_deal(self, deal_id: str, name: str, service_line=None, created_date=None, companies=()):
        self.deals[deal_id] = {
            "name": name,
            "service_line": service_line,
            "created_date": created_date,
        }
        self.deal_companies[deal_id] = list(companies)

    def add_company(self, company_id: str, name: str):
        self.companies[company_id] = name

    def record_id(self, object_type: str, natural_id: str) -> str | None:
        record = self.records.get((object_type, natural_id))
        return record["id"] if record else None

    def edges(self, kind: AssociationKind) -> set[tuple[str, str]]:
        return {(f, t) for k, f, t in self.associations if k == kind.value}

    async def find_record_id(self, object_type: str, id_property: str, natural_id: str):
        return self.record_id(object_type, natural_id)

    async def upsert_by_natural_key(self, object_type, id_property, natural_id, properties):
        self.upsert_calls.append((object_type, natural_id))
        if object_type in self.fail_upserts_for:
            raise HubSpotAPIError(f"HubSpot create failed for {object_type}", status_code=400, retryable=False)

        existing = self.records.get((object_type, natural_id))
        if existing:
            existing["properties"] = dict(properties)
            return UpsertResult(record_id=existing["id"], created=False)

        record_id = str(next(self._ids))
        self.records[(object_type, natural_id)] = {"id": record_id, "properties": dict(properties)}
        return UpsertResult(record_id=record_id, created=True)

    async def search_deals_by_name(self, name: str, exact: bool = True):
        if self.truncate_deal_search:
            raise HubSpotSearchTruncatedError("deals", results_seen=1000)
        if self.fail_deal_search:
            raise HubSpotAPIError("HubSpot search failed (HTTP 503)", status_code=503)
        needle = name.lower()
        return [
            HubSpotDeal(
                id=deal_id,
                name=deal["name"],
                service_line=deal["service_line"],
                created_date=deal["created_date"],
            )
            for deal_id, deal in self.deals.items()
            if (deal["name"].lower() == needle if exact else needle.split()[0] in deal["name"].lower())
        ]

    async def get_associated_ids(self, from_type: str, from_id: str, to_type: str) -> list[str]:
        if from_type == DEALS and to_type == COMPANIES:
            return list(self.deal_companies.get(from_id, []))
        if from_type == self.settings.HUBSPOT_JOB_OBJECT_TYPE and to_type == DEALS:
            return sorted(t for k, f, t in self.associations if k == "job_to_deal" and f == from_id)
        return []

    async def get_company_name(self, company_id: str):
        return self.companies.get(company_id)

    async def create_association(self, kind: AssociationKind, from_id: str, to_id: str):
        edge = (kind.value, from_id, to_id)
        if edge in self.associations:
            return AssociationResult(kind, from_id, to_id, AssociationStatus.EXISTS)
        self.associations.add(edge)
        return AssociationResult(kind, from_id, to_id, AssociationStatus.CREATED)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        POLLING_ENABLED=False,
        MAX_RETRIES=0,
        RETRY_BASE_DELAY_SECONDS=0,
        SYNC_PAGE_SIZE=2,
        SYNC_MAX_CONCURRENCY=2,
        MATCHING_MODE="fuzzy",
    )


@pytest.fixture
def fake_tracker():
    return FakeTracker()


@pytest.fixture
def fake_hubspot(test_settings):
    return FakeHubSpot(test_settings)


@pytest.fixture
def job_sync(fake_tracker, fake_hubspot, test_settings):
    return JobSyncService(fake_tracker, fake_hubspot, config=test_settings)


@pytest.fixture
def placement_sync(fake_tracker, fake_hubspot, test_settings):
    return PlacementSyncService(fake_tracker, fake_hubspot, config=test_settings)


@pytest.fixture
def services(test_settings, fake_tracker, fake_hubspot, job_sync, placement_sync):
    return ServiceContainer(
        settings=test_settings,
        tracker=fake_tracker,
        hubspot=fake_hubspot,
        job_sync=job_sync,
        placement_sync=placement_sync,
        reconciliation_job=ReconciliationJob(
            fake_tracker, job_sync, placement_sync, config=test_settings
        ),
        idempotency_store=InMemoryIdempotencyStore(max_size=100),
    )
