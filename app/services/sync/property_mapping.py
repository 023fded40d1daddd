"""
Tracker → HubSpot property mapping.

Optional Tracker fields are written only when they carry a value; an empty
or missing optional field never produces a HubSpot property.
"""

from typing import Any

from app.config import Settings
from app.models.domain.tracker_domain import TrackerCandidate, TrackerJob, TrackerPlacement
from app.services.sync.placement_rules import outcome_category

# Placement attribute -> HubSpot property, copied through when present
PLACEMENT_OPTIONAL_PROPERTIES = {
    "date_assigned": "date_assigned",
    "date_confirmed": "date_confirmed",
    "placement_start_date": "placement_start_date",
    "end_date": "end_date",
    "scheduled_end_date": "scheduled_end_date",
    "date_closed": "date_closed",
    "conversion_start_date": "conversion_start_date",
    "agreement_signed_date": "agreement_signed_date",
    "days_guaranteed": "days_guaranteed",
    "assignment_value": "assignment_value",
    "placement_fee_percent": "placement_fee_percent",
    "actual_margin": "actual_margin",
    "actual_margin_percent": "actual_margin_percent",
    "bill_rate": "bill_rate",
    "pay_rate": "pay_rate",
    "placement_currency": "placement_currency",
    "recruiter": "recruiter",
    "coordinator": "coordinator",
    "engagement_director": "engagement_director",
}


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


def _to_property(value: Any) -> str:
    # HubSpot properties are written as strings
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _set_optional(properties: dict[str, str], name: str, value: Any) -> None:
    if _has_value(value):
        properties[name] = _to_property(value)


def build_job_properties(job: TrackerJob, settings: Settings) -> dict[str, str]:
    properties = {
        settings.HUBSPOT_JOB_ID_PROPERTY: job.id,
        settings.HUBSPOT_JOB_NAME_PROPERTY: job.name,
        settings.HUBSPOT_JOB_STATUS_PROPERTY: job.status,
    }
    _set_optional(properties, settings.HUBSPOT_JOB_CREATED_DATE_PROPERTY, job.created_date)
    _set_optional(properties, settings.HUBSPOT_JOB_TYPE_PROPERTY, job.job_type)
    _set_optional(properties, settings.HUBSPOT_ENGAGEMENT_DIRECTOR_PROPERTY, job.engagement_director)
    _set_optional(properties, settings.HUBSPOT_JOB_VALUE_PROPERTY, job.job_value)
    _set_optional(properties, settings.HUBSPOT_JOB_OWNER_PROPERTY, job.job_owner)
    return properties


def placement_display_name(candidate_name: str, job_name: str) -> str:
    return f"{candidate_name} – {job_name}"


def build_placement_properties(
    placement: TrackerPlacement,
    job_name: str,
    candidate_name: str,
    settings: Settings,
) -> dict[str, str]:
    properties = {
        settings.HUBSPOT_PLACEMENT_ID_PROPERTY: placement.id,
        settings.HUBSPOT_PLACEMENT_NAME_PROPERTY: placement_display_name(candidate_name, job_name),
        settings.HUBSPOT_PLACEMENT_JOB_ID_PROPERTY: placement.job_id,
        settings.HUBSPOT_PLACEMENT_JOB_NAME_PROPERTY: job_name,
        settings.HUBSPOT_PLACEMENT_CANDIDATE_ID_PROPERTY: placement.candidate_id,
        settings.HUBSPOT_PLACEMENT_CANDIDATE_NAME_PROPERTY: candidate_name,
        settings.HUBSPOT_PLACEMENT_STATUS_PROPERTY: placement.status,
        settings.HUBSPOT_PLACEMENT_OUTCOME_PROPERTY: outcome_category(placement.status).value,
    }
    for attribute, name in PLACEMENT_OPTIONAL_PROPERTIES.items():
        _set_optional(properties, name, getattr(placement, attribute))
    return properties


def build_contact_properties(candidate: TrackerCandidate, settings: Settings) -> dict[str, str]:
    properties = {
        settings.HUBSPOT_CONTACT_ID_PROPERTY: candidate.id,
        "lifecyclestage": settings.HUBSPOT_CONTACT_LIFECYCLE_STAGE,
    }
    _set_optional(properties, "firstname", candidate.first_name)
    _set_optional(properties, "lastname", candidate.last_name)
    _set_optional(properties, "email", candidate.email)
    _set_optional(properties, "phone", candidate.phone)
    return properties
