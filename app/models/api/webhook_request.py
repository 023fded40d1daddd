"""
Inbound webhook request models.
Used by the webhook route for envelope validation.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TrackerEventType(str, Enum):
    JOB_CREATED = "job.created"
    JOB_UPDATED = "job.updated"
    PLACEMENT_CREATED = "placement.created"
    PLACEMENT_UPDATED = "placement.updated"

    @property
    def entity(self) -> str:
        return self.value.split(".")[0]


class WebhookEventData(BaseModel):
    """Event payload; only the entity id is used, the record is re-fetched."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    job_id: str | None = Field(default=None, alias="jobId", description="Tracker job id")
    placement_id: str | None = Field(
        default=None, alias="placementId", description="Tracker placement id"
    )


class WebhookPayload(BaseModel):
    """Tracker webhook envelope."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(..., alias="eventType", min_length=1, description="Event type")
    event_id: str = Field(..., alias="eventId", min_length=1, description="Unique delivery id")
    timestamp: str | None = Field(default=None, description="Event time as sent by Tracker")
    data: WebhookEventData = Field(default_factory=WebhookEventData)
