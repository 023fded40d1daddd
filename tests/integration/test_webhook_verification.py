import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.routes import sync, webhook


@pytest.fixture
def client(services):
    app = FastAPI()
    app.include_router(webhook.router)
    app.include_router(sync.router)
    app.state.services = services
    return TestClient(app)


def _event(event_id="evt-1", event_type="job.created", **data) -> dict:
    return {"eventType": event_type, "eventId": event_id, "timestamp": "2024-01-01T00:00:00Z", "data": data}


def test_job_event_is_processed(client, fake_tracker, fake_hubspot):
    fake_tracker.add_job("J1", "VP Sales")

    response = client.post("/webhook", json=_event(jobId="J1"))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["event_id"] == "evt-1"
    assert body["outcome"]["action"] == "created"
    assert fake_hubspot.record_id("tracker_jobs", "J1") == body["outcome"]["target_id"]


def test_redelivery_is_not_reprocessed(client, fake_tracker, fake_hubspot):
    fake_tracker.add_job("J1", "VP Sales")

    client.post("/webhook", json=_event(jobId="J1"))
    calls_after_first = len(fake_hubspot.upsert_calls)
    response = client.post("/webhook", json=_event(jobId="J1"))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "already_processed"
    assert body["previous_status"] == "success"
    assert body["processed_at"]
    assert len(fake_hubspot.upsert_calls) == calls_after_first


def test_skipped_placement_reports_skipped(client, fake_tracker):
    fake_tracker.add_candidate("C1", "Ada", "Lovelace")
    fake_tracker.add_placement("P1", "J-missing", "C1", "Placed Perm")

    response = client.post(
        "/webhook", json=_event(event_type="placement.updated", placementId="P1")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "skipped"
    assert body["outcome"]["skip_reason"] == "job_not_synced"


def test_processing_failure_is_recorded_as_failed(client, services):
    response = client.post("/webhook", json=_event(jobId="does-not-exist"))

    assert response.status_code == 500
    assert response.json()["status"] == "error"

    retry = client.post("/webhook", json=_event(jobId="does-not-exist"))
    assert retry.status_code == 200
    assert retry.json()["status"] == "already_processed"
    assert retry.json()["previous_status"] == "failed"


def test_unknown_event_type_rejected_and_not_recorded(client, services):
    response = client.post("/webhook", json=_event(event_type="candidate.created"))

    assert response.status_code == 400
    assert len(services.idempotency_store) == 0


def test_missing_entity_id_rejected(client, services):
    response = client.post("/webhook", json=_event(event_type="placement.created"))

    assert response.status_code == 400
    assert "placementId" in response.json()["detail"]
    assert len(services.idempotency_store) == 0


def test_missing_event_id_rejected(client):
    response = client.post("/webhook", json={"eventType": "job.created", "data": {"jobId": "J1"}})

    assert response.status_code == 400


def test_invalid_json_rejected(client):
    response = client.post(
        "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


def test_webhook_valid_secret(client, services, fake_tracker):
    services.settings.WEBHOOK_SECRET = "test-secret"
    fake_tracker.add_job("J1", "VP Sales")

    raw = json.dumps(_event(jobId="J1")).encode("utf-8")
    response = client.post(
        "/webhook",
        content=raw,
        headers={webhook.WEBHOOK_HEADER: "test-secret", "Content-Type": "application/json"},
    )

    assert response.status_code == 200


def test_webhook_invalid_secret(client, services):
    services.settings.WEBHOOK_SECRET = "test-secret"

    response = client.post("/webhook", json=_event(jobId="J1"), headers={webhook.WEBHOOK_HEADER: "bad"})

    assert response.status_code == 401
    assert len(services.idempotency_store) == 0


def test_webhook_missing_signature(client, services):
    services.settings.WEBHOOK_SECRET = "test-secret"

    response = client.post("/webhook", json=_event(jobId="J1"))

    assert response.status_code == 401


def test_manual_sync_accepted(client, services, monkeypatch):
    monkeypatch.setattr(services.reconciliation_job, "trigger_in_background", lambda trigger: True)

    response = client.post("/sync/manual")

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"


def test_manual_sync_already_running(client, services, monkeypatch):
    monkeypatch.setattr(services.reconciliation_job, "trigger_in_background", lambda trigger: False)

    response = client.post("/sync/manual")

    assert response.status_code == 202
    assert response.json()["status"] == "already_running"


def test_sync_status(client):
    response = client.get("/sync/status")

    assert response.status_code == 200
    data = response.json()
    assert data["job_name"] == "reconciliation"
    assert data["is_running"] is False
    assert data["last_run_metrics"] is None
