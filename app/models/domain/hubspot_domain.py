"""
HubSpot Domain Models
Target-side records the sync reads, writes and links.
"""

from dataclasses import dataclass, field
from enum import Enum


class AssociationKind(str, Enum):
    """Directed, typed edges created between HubSpot records."""

    JOB_TO_DEAL = "job_to_deal"
    JOB_TO_COMPANY = "job_to_company"
    PLACEMENT_TO_JOB = "placement_to_job"
    PLACEMENT_TO_DEAL = "placement_to_deal"
    PLACEMENT_TO_COMPANY = "placement_to_company"
    PLACEMENT_TO_CONTACT = "placement_to_contact"

    @property
    def from_role(self) -> str:
        return self.value.split("_to_")[0]

    @property
    def to_role(self) -> str:
        return self.value.split("_to_")[1]


class AssociationStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    FAILED = "failed"


@dataclass(slots=True)
class AssociationResult:
    """Outcome of a single association attempt; 'exists' counts as success."""

    kind: AssociationKind
    from_id: str
    to_id: str
    status: AssociationStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != AssociationStatus.FAILED

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind.value,
            "from_id": self.from_id,
            "to_id": self.to_id,
            "status": self.status.value,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class HubSpotDeal:
    """A standard HubSpot deal. Never created or mutated by this service."""

    id: str
    name: str
    service_line: str | None = None
    created_date: str | None = None
    company_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UpsertResult:
    """Result of an upsert by natural key."""

    record_id: str
    created: bool

    @property
    def action(self) -> str:
        return "created" if self.created else "updated"
