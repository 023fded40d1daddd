import pytest

from app.services.sync.placement_rules import (
    ALLOWED_STATUSES,
    OutcomeCategory,
    PlacementStatus,
    is_allowed_for_sync,
    is_candidate_contact_eligible,
    outcome_category,
)

STATUS_TABLE = [
    ("Placed Perm", True, OutcomeCategory.PLACED),
    ("On Assignment", True, OutcomeCategory.PLACED),
    ("Converted To Perm", True, OutcomeCategory.CONVERTED),
    ("Withdrawn", False, OutcomeCategory.CANCELLED),
    ("Declined", False, OutcomeCategory.CANCELLED),
    ("Ended", False, OutcomeCategory.ENDED),
    ("Cancelled", False, OutcomeCategory.CANCELLED),
    ("Backed Out", False, OutcomeCategory.CANCELLED),
    ("Ended Early", False, OutcomeCategory.ENDED),
]


@pytest.mark.parametrize("status,eligible,category", STATUS_TABLE)
def test_status_table(status, eligible, category):
    assert is_allowed_for_sync(status) is True
    assert is_candidate_contact_eligible(status) is eligible
    assert outcome_category(status) == category


def test_table_covers_every_known_status():
    assert {row[0] for row in STATUS_TABLE} == ALLOWED_STATUSES
    assert len(PlacementStatus) == 9


@pytest.mark.parametrize("status", ["Shortlisted", "placed perm", "", None])
def test_unknown_statuses_are_denied(status):
    assert is_allowed_for_sync(status) is False
    assert is_candidate_contact_eligible(status) is False
    assert outcome_category(status) == OutcomeCategory.CANCELLED
