"""
Placement status rules.

A placement's Tracker status is the only input to every downstream
decision. This module classifies it; it never drives status changes.

HARD RULE: only placed outcomes may create or update a HubSpot contact.
Anything else, including statuses we do not recognise, is denied.
"""

from enum import Enum

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class PlacementStatus(str, Enum):
    PLACED_PERM = "Placed Perm"
    ON_ASSIGNMENT = "On Assignment"
    CONVERTED_TO_PERM = "Converted To Perm"
    WITHDRAWN = "Withdrawn"
    DECLINED = "Declined"
    ENDED = "Ended"
    CANCELLED = "Cancelled"
    BACKED_OUT = "Backed Out"
    ENDED_EARLY = "Ended Early"


class OutcomeCategory(str, Enum):
    PLACED = "Placed"
    CONVERTED = "Converted"
    ENDED = "Ended"
    CANCELLED = "Cancelled"


ALLOWED_STATUSES = frozenset(status.value for status in PlacementStatus)

CANDIDATE_ELIGIBLE_STATUSES = frozenset(
    {
        PlacementStatus.PLACED_PERM.value,
        PlacementStatus.ON_ASSIGNMENT.value,
        PlacementStatus.CONVERTED_TO_PERM.value,
    }
)

CANDIDATE_BLOCKED_STATUSES = ALLOWED_STATUSES - CANDIDATE_ELIGIBLE_STATUSES

OUTCOME_BY_STATUS: dict[str, OutcomeCategory] = {
    PlacementStatus.PLACED_PERM.value: OutcomeCategory.PLACED,
    PlacementStatus.ON_ASSIGNMENT.value: OutcomeCategory.PLACED,
    PlacementStatus.CONVERTED_TO_PERM.value: OutcomeCategory.CONVERTED,
    PlacementStatus.ENDED.value: OutcomeCategory.ENDED,
    PlacementStatus.ENDED_EARLY.value: OutcomeCategory.ENDED,
    PlacementStatus.WITHDRAWN.value: OutcomeCategory.CANCELLED,
    PlacementStatus.DECLINED.value: OutcomeCategory.CANCELLED,
    PlacementStatus.CANCELLED.value: OutcomeCategory.CANCELLED,
    PlacementStatus.BACKED_OUT.value: OutcomeCategory.CANCELLED,
}


def is_allowed_for_sync(status: str | None) -> bool:
    """True for the nine known statuses; callers skip anything else with a warning."""
    return status in ALLOWED_STATUSES


def is_candidate_contact_eligible(status: str | None) -> bool:
    """True only for placed outcomes (default-deny)."""
    if status in CANDIDATE_ELIGIBLE_STATUSES:
        return True

    if status in CANDIDATE_BLOCKED_STATUSES:
        logger.debug("Candidate contact sync blocked for status", status=status)
    return False


def outcome_category(status: str | None) -> OutcomeCategory:
    """Reporting category for a status; unmapped statuses fall back to Cancelled."""
    return OUTCOME_BY_STATUS.get(status, OutcomeCategory.CANCELLED)
