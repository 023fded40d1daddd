import httpx
import pytest

from app.config import Settings
from app.services.tracker.client import TrackerAPIError, TrackerClient


def _client(handler, **overrides) -> TrackerClient:
    values = {"MAX_RETRIES": 2, "RETRY_BASE_DELAY_SECONDS": 0, "TRACKER_API_KEY": "key"}
    values.update(overrides)
    return TrackerClient(Settings(_env_file=None, **values), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_jobs_accepts_bare_list():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=[{"id": 1, "name": "VP Sales", "status": "Open", "region": "EU"}])

    client = _client(handler)
    jobs = await client.list_jobs(limit=50, offset=100)

    assert seen["params"] == {"limit": "50", "offset": "100"}
    assert seen["auth"] == "Bearer key"
    assert jobs[0].id == "1"
    assert jobs[0].name == "VP Sales"
    assert jobs[0].extra == {"region": "EU"}
    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["data", "results", "items"])
async def test_list_placements_accepts_wrapped_pages(key):
    item = {
        "id": "P1",
        "jobId": "J1",
        "candidateId": "C1",
        "status": "Placed Perm",
        "candidate": {"id": "C1", "firstName": "Ada", "lastName": "Lovelace"},
    }

    client = _client(lambda request: httpx.Response(200, json={key: [item]}))
    placements = await client.list_placements(limit=10, offset=0)

    assert len(placements) == 1
    assert placements[0].status == "Placed Perm"
    assert placements[0].candidate.full_name == "Ada Lovelace"
    assert placements[0].job is None
    await client.close()


@pytest.mark.asyncio
async def test_unrecognised_page_shape_is_empty():
    client = _client(lambda request: httpx.Response(200, json={"total": 0}))

    assert await client.list_jobs(limit=10, offset=0) == []
    await client.close()


@pytest.mark.asyncio
async def test_retries_service_unavailable():
    calls = {"n": 0}

    def handler(request: httpx.Request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"id": "J1", "name": "CFO", "status": "Open"})

    client = _client(handler)
    job = await client.get_job("J1")

    assert job.name == "CFO"
    assert calls["n"] == 2
    await client.close()


@pytest.mark.asyncio
async def test_not_found_is_not_retried():
    calls = {"n": 0}

    def handler(request: httpx.Request):
        calls["n"] += 1
        return httpx.Response(404, json={"error": "not found"})

    client = _client(handler)
    with pytest.raises(TrackerAPIError) as exc_info:
        await client.get_candidate("missing")

    assert exc_info.value.status_code == 404
    assert calls["n"] == 1
    await client.close()


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries():
    calls = {"n": 0}

    def handler(request: httpx.Request):
        calls["n"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler, MAX_RETRIES=1)
    with pytest.raises(TrackerAPIError):
        await client.get_placement("P1")

    assert calls["n"] == 2
    await client.close()
