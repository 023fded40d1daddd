"""
Sync Domain Models
Values produced while reconciling Tracker records into HubSpot:
match decisions, idempotency ledger entries and per-record outcomes.
None of these are persisted in HubSpot.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from app.models.domain.hubspot_domain import AssociationResult


class MatchConfidence(str, Enum):
    EXACT = "exact"
    HIGH = "high"
    LOW = "low"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


@dataclass(slots=True)
class MatchCandidate:
    id: str
    name: str
    score: float


@dataclass(slots=True)
class MatchResult:
    """Decision for one job against a set of candidate deals."""

    matched: bool
    confidence: MatchConfidence
    reason: str
    deal_id: str | None = None
    candidate_deals: list[MatchCandidate] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "matched": self.matched,
            "deal_id": self.deal_id,
            "confidence": self.confidence.value,
            "reason": self.reason,
            "candidate_deals": [
                {"id": c.id, "name": c.name, "score": c.score} for c in self.candidate_deals
            ],
        }


class EventStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class ProcessedEvent:
    """Idempotency ledger entry for one inbound webhook event."""

    event_id: str
    processed_at: datetime
    status: EventStatus
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "processed_at": self.processed_at.isoformat(),
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessedEvent":
        return cls(
            event_id=data["event_id"],
            processed_at=datetime.fromisoformat(data["processed_at"]),
            status=EventStatus(data["status"]),
            error=data.get("error"),
        )


class RecordAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class RecordOutcome:
    """
    What happened to one Tracker record during a sync attempt.

    Association attempts and matching problems are collected here rather
    than raised, so a job or placement that was upserted still reports as
    created/updated even when linking it failed.
    """

    record_type: str  # "job" or "placement"
    source_id: str
    action: RecordAction
    target_id: str | None = None
    skip_reason: str | None = None
    error: str | None = None
    match: MatchResult | None = None
    associations: list[AssociationResult] = field(default_factory=list)
    contact_action: RecordAction | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def failed_associations(self) -> list[AssociationResult]:
        return [a for a in self.associations if not a.ok]

    def to_dict(self) -> dict:
        data = {
            "record_type": self.record_type,
            "source_id": self.source_id,
            "action": self.action.value,
            "target_id": self.target_id,
        }
        if self.skip_reason:
            data["skip_reason"] = self.skip_reason
        if self.error:
            data["error"] = self.error
        if self.match is not None:
            data["match"] = self.match.to_dict()
        if self.associations:
            data["associations"] = [a.to_dict() for a in self.associations]
        if self.contact_action is not None:
            data["contact_action"] = self.contact_action.value
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data
