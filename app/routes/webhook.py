"""
Tracker webhook endpoint.

Each delivery is checked against the idempotency ledger, processed by
re-fetching the referenced record from Tracker and running the same
per-record pipeline as the polling cycle, then recorded with its terminal
status. Malformed envelopes and unknown event types are rejected with 400
and are not recorded.
"""

import hmac

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.dependencies import ServiceContainer, get_container
from app.infrastructure.observability.logging import get_logger
from app.models.api.sync_response import WebhookResponse
from app.models.api.webhook_request import TrackerEventType, WebhookPayload
from app.models.domain.sync_domain import EventStatus, RecordAction, RecordOutcome

logger = get_logger(__name__)

router = APIRouter()
WEBHOOK_HEADER = "x-webhook-signature"


class WebhookEventError(Exception):
    """Raised for envelopes that can never be processed (client error, not retried)."""


def verify_webhook_secret(secret: str | None, signature: str | None) -> None:
    """Shared-secret header check; disabled when no secret is configured."""
    if not secret:
        return
    if not signature or not hmac.compare_digest(signature.encode(), secret.encode()):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Unauthorized")


def resolve_event(payload: WebhookPayload) -> tuple[TrackerEventType, str]:
    """
    Map an envelope to its event type and Tracker entity id.

    Raises:
        WebhookEventError: Unknown event type or missing entity id
    """
    try:
        event_type = TrackerEventType(payload.event_type)
    except ValueError:
        raise WebhookEventError(f"Unsupported event type: {payload.event_type}") from None

    if event_type.entity == "job":
        entity_id = payload.data.job_id
    else:
        entity_id = payload.data.placement_id

    if not entity_id:
        field = "jobId" if event_type.entity == "job" else "placementId"
        raise WebhookEventError(f"{field} is required for {event_type.value} events")

    return event_type, entity_id


async def process_event(
    services: ServiceContainer, event_type: TrackerEventType, entity_id: str
) -> RecordOutcome:
    if event_type.entity == "job":
        return await services.job_sync.sync_job_by_id(entity_id)
    return await services.placement_sync.sync_placement_by_id(entity_id)


@router.post("/webhook", response_model=WebhookResponse)
async def tracker_webhook(request: Request, services: ServiceContainer = Depends(get_container)):
    verify_webhook_secret(services.settings.WEBHOOK_SECRET, request.headers.get(WEBHOOK_HEADER))

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None

    try:
        payload = WebhookPayload.model_validate(body)
        event_type, entity_id = resolve_event(payload)
    except ValidationError as e:
        logger.warning("Rejected malformed webhook envelope", error_count=e.error_count())
        raise HTTPException(status_code=400, detail="Malformed webhook envelope") from None
    except WebhookEventError as e:
        logger.warning("Rejected webhook event", event_id=body.get("eventId"), error=str(e))
        raise HTTPException(status_code=400, detail=str(e)) from None

    event_id = payload.event_id
    logger.info("Received webhook event", event_type=event_type.value, event_id=event_id)

    store = services.idempotency_store
    if await store.has_processed(event_id):
        processed = await store.get(event_id)
        logger.info(
            "Event already processed",
            event_id=event_id,
            processed_at=processed.processed_at.isoformat() if processed else None,
        )
        return WebhookResponse(
            status="already_processed",
            event_id=event_id,
            processed_at=processed.processed_at.isoformat() if processed else None,
            previous_status=processed.status.value if processed else None,
        )

    try:
        outcome = await process_event(services, event_type, entity_id)
    except Exception as e:
        logger.error(
            "Error processing webhook event",
            event_id=event_id,
            event_type=event_type.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        await store.mark_processed(event_id, EventStatus.FAILED, str(e))
        response = WebhookResponse(status="error", event_id=event_id, error=str(e))
        return JSONResponse(status_code=500, content=response.model_dump())

    await store.mark_processed(event_id, EventStatus.SUCCESS)
    status = "skipped" if outcome.action == RecordAction.SKIPPED else "success"
    logger.info("Successfully processed event", event_id=event_id, status=status)

    return WebhookResponse(status=status, event_id=event_id, outcome=outcome.to_dict())
