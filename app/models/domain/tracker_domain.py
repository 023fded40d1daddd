"""
Tracker Domain Models
Snapshots of TrackerRMS records fetched per sync attempt.

Each model exposes a fixed set of typed fields that the matching and
eligibility logic depend on. Anything else the API returns is kept in
``extra`` so it can be passed through without widening the core shape.
"""

from dataclasses import dataclass, field
from typing import Any

JOB_FIELDS = {
    "id": "id",
    "name": "name",
    "status": "status",
    "createdDate": "created_date",
    "companyName": "company_name",
    "jobValue": "job_value",
    "jobOwner": "job_owner",
    "jobType": "job_type",
    "engagementDirector": "engagement_director",
}

CANDIDATE_FIELDS = {
    "id": "id",
    "firstName": "first_name",
    "lastName": "last_name",
    "fullName": "full_name",
    "email": "email",
    "phone": "phone",
}

PLACEMENT_FIELDS = {
    "id": "id",
    "jobId": "job_id",
    "candidateId": "candidate_id",
    "status": "status",
    "createdDate": "created_date",
    "dateAssigned": "date_assigned",
    "dateConfirmed": "date_confirmed",
    "placementStartDate": "placement_start_date",
    "endDate": "end_date",
    "scheduledEndDate": "scheduled_end_date",
    "dateClosed": "date_closed",
    "conversionStartDate": "conversion_start_date",
    "agreementSignedDate": "agreement_signed_date",
    "daysGuaranteed": "days_guaranteed",
    "assignmentValue": "assignment_value",
    "placementFeePercent": "placement_fee_percent",
    "actualMargin": "actual_margin",
    "actualMarginPercent": "actual_margin_percent",
    "billRate": "bill_rate",
    "payRate": "pay_rate",
    "placementCurrency": "placement_currency",
    "recruiter": "recruiter",
    "coordinator": "coordinator",
    "engagementDirector": "engagement_director",
}

# Embedded snapshots handled separately
_PLACEMENT_NESTED = {"job", "candidate"}


def _split_fields(data: dict, field_map: dict[str, str]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split an API payload into known model fields and pass-through extras."""
    known: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    snake_names = set(field_map.values())

    for key, value in data.items():
        if key in field_map:
            known[field_map[key]] = value
        elif key in snake_names:
            known[key] = value
        else:
            extra[key] = value

    return known, extra


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(slots=True)
class TrackerJob:
    """A Tracker job (opportunity) snapshot."""

    id: str
    name: str
    status: str
    created_date: str | None = None
    company_name: str | None = None
    job_value: float | None = None
    job_owner: str | None = None
    job_type: str | None = None
    engagement_director: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "TrackerJob":
        known, extra = _split_fields(data, JOB_FIELDS)
        return cls(
            id=str(known.get("id", "")),
            name=known.get("name") or "",
            status=known.get("status") or "",
            created_date=_as_str(known.get("created_date")),
            company_name=known.get("company_name") or None,
            job_value=known.get("job_value"),
            job_owner=known.get("job_owner") or None,
            job_type=known.get("job_type") or None,
            engagement_director=known.get("engagement_director") or None,
            extra=extra,
        )


@dataclass(slots=True)
class TrackerCandidate:
    """A Tracker candidate; only placed candidates ever reach HubSpot."""

    id: str
    full_name: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "TrackerCandidate":
        known, extra = _split_fields(data, CANDIDATE_FIELDS)
        first = known.get("first_name") or None
        last = known.get("last_name") or None
        full_name = known.get("full_name") or " ".join(p for p in (first, last) if p)
        return cls(
            id=str(known.get("id", "")),
            full_name=full_name,
            first_name=first,
            last_name=last,
            email=known.get("email") or None,
            phone=known.get("phone") or None,
            extra=extra,
        )


@dataclass(slots=True)
class TrackerPlacement:
    """
    A Tracker placement (opportunity resource).

    The status is the only driver of downstream decisions; every other
    attribute is copied onto the HubSpot record as-is.
    """

    id: str
    job_id: str
    candidate_id: str
    status: str
    created_date: str | None = None
    date_assigned: str | None = None
    date_confirmed: str | None = None
    placement_start_date: str | None = None
    end_date: str | None = None
    scheduled_end_date: str | None = None
    date_closed: str | None = None
    conversion_start_date: str | None = None
    agreement_signed_date: str | None = None
    days_guaranteed: int | None = None
    assignment_value: float | None = None
    placement_fee_percent: float | None = None
    actual_margin: float | None = None
    actual_margin_percent: float | None = None
    bill_rate: float | None = None
    pay_rate: float | None = None
    placement_currency: str | None = None
    recruiter: str | None = None
    coordinator: str | None = None
    engagement_director: str | None = None
    job: TrackerJob | None = None
    candidate: TrackerCandidate | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "TrackerPlacement":
        nested = {k: data[k] for k in _PLACEMENT_NESTED if isinstance(data.get(k), dict)}
        flat = {k: v for k, v in data.items() if k not in nested}
        known, extra = _split_fields(flat, PLACEMENT_FIELDS)

        known["id"] = str(known.get("id", ""))
        known["job_id"] = str(known.get("job_id", ""))
        known["candidate_id"] = str(known.get("candidate_id", ""))
        known["status"] = known.get("status") or ""

        return cls(
            **known,
            job=TrackerJob.from_api(nested["job"]) if "job" in nested else None,
            candidate=(
                TrackerCandidate.from_api(nested["candidate"]) if "candidate" in nested else None
            ),
            extra=extra,
        )
