"""
Response models for webhook, manual sync and health endpoints.
"""

from typing import Any

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    status: str = Field(..., description="success, skipped, already_processed or error")
    event_id: str
    processed_at: str | None = None
    previous_status: str | None = None
    outcome: dict[str, Any] | None = None
    error: str | None = None


class ManualSyncResponse(BaseModel):
    status: str = Field(..., description="accepted or already_running")
    message: str
    timestamp: str


class SyncStatusResponse(BaseModel):
    job_name: str
    is_running: bool
    last_run_time: str | None = None
    interval_hours: float
    polling_enabled: bool
    page_size: int
    max_concurrency: int
    last_run_metrics: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    mode: str
    service: str = "tracker-hubspot-sync"
