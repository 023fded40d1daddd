"""
Job ↔ Deal matching.

Links a Tracker job to at most one HubSpot deal. A wrong link is worse than
no link, so every state that cannot be resolved to exactly one deal ends as
a no-op result ("none" or "ambiguous") instead of a best guess.

Two deployment policies are supported:

- ``exact``: normalized name equality, exactly one survivor required.
- ``fuzzy``: containment match, then a disambiguation cascade
  (company name, then created-date proximity) when several deals survive.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.config import Settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.hubspot_domain import HubSpotDeal
from app.models.domain.sync_domain import MatchCandidate, MatchConfidence, MatchResult
from app.models.domain.tracker_domain import TrackerJob
from app.services.matching.normalizer import close_match, normalize_name, similarity_score

logger = get_logger(__name__)

MATCHING_MODES = {"exact", "fuzzy"}


@dataclass(frozen=True, slots=True)
class MatchingPolicy:
    mode: str = "fuzzy"
    retained_value: str = "Retained Search"
    date_window_days: int = 14
    strip_punctuation: bool = False

    def __post_init__(self):
        if self.mode not in MATCHING_MODES:
            raise ValueError(
                f"Unknown matching mode '{self.mode}'. Expected one of: {', '.join(sorted(MATCHING_MODES))}"
            )

    @property
    def disambiguate(self) -> bool:
        return self.mode == "fuzzy"

    @classmethod
    def from_settings(cls, settings: Settings) -> "MatchingPolicy":
        return cls(
            mode=settings.MATCHING_MODE.strip().lower(),
            retained_value=settings.HUBSPOT_DEAL_SERVICE_LINE_RETAINED_VALUE,
            date_window_days=settings.MATCHING_CREATED_DATE_WINDOW_DAYS,
            strip_punctuation=settings.MATCHING_STRIP_PUNCTUATION,
        )


def parse_date(value: str | int | float | None) -> datetime | None:
    """Parse ISO-8601 strings or epoch milliseconds; anything else yields None."""
    if value is None or value == "":
        return None

    try:
        if isinstance(value, (int, float)) or str(value).isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class JobDealMatcher:
    """Decides match / no-match / ambiguous for one job against candidate deals."""

    def __init__(self, policy: MatchingPolicy | None = None):
        self.policy = policy or MatchingPolicy()

    def _names_match(self, job_name: str, deal_name: str) -> bool:
        strip = self.policy.strip_punctuation
        if self.policy.mode == "exact":
            return normalize_name(job_name, strip) == normalize_name(deal_name, strip)
        return close_match(job_name, deal_name, strip)

    def _service_line_ok(self, deal: HubSpotDeal) -> bool:
        # A deal without a service line is compatible
        if not deal.service_line:
            return True
        return deal.service_line == self.policy.retained_value

    def filter_candidates(self, job: TrackerJob, deals: list[HubSpotDeal]) -> list[HubSpotDeal]:
        """Deals whose name matches the job under this policy and whose service line is allowed."""
        return [
            deal
            for deal in deals
            if self._names_match(job.name, deal.name) and self._service_line_ok(deal)
        ]

    def _candidates(self, job: TrackerJob, deals: list[HubSpotDeal]) -> list[MatchCandidate]:
        return [
            MatchCandidate(
                id=deal.id,
                name=deal.name,
                score=similarity_score(job.name, deal.name, self.policy.strip_punctuation),
            )
            for deal in deals
        ]

    def _ambiguous(self, job: TrackerJob, deals: list[HubSpotDeal], reason: str) -> MatchResult:
        logger.warning(
            "Job matching ambiguous, manual review required",
            job_id=job.id,
            job_name=job.name,
            candidate_count=len(deals),
            reason=reason,
        )
        return MatchResult(
            matched=False,
            confidence=MatchConfidence.AMBIGUOUS,
            reason=reason,
            candidate_deals=self._candidates(job, deals),
        )

    def _matched(self, job: TrackerJob, deal: HubSpotDeal, confidence: MatchConfidence, reason: str):
        logger.info(
            "Job matched to deal",
            job_id=job.id,
            deal_id=deal.id,
            confidence=confidence.value,
            reason=reason,
        )
        return MatchResult(
            matched=True,
            confidence=confidence,
            reason=reason,
            deal_id=deal.id,
            candidate_deals=self._candidates(job, [deal]),
        )

    def match_job_to_deal(
        self,
        job: TrackerJob,
        deals: list[HubSpotDeal],
        company_names_by_deal_id: dict[str, str] | None = None,
    ) -> MatchResult:
        """
        Match a Tracker job to exactly one HubSpot deal.

        Args:
            job: Tracker job snapshot
            deals: Candidate deals (usually a name search result)
            company_names_by_deal_id: Associated company name per deal id, used
                for company disambiguation in fuzzy mode

        Returns:
            MatchResult: matched with "exact"/"high" confidence, or unmatched
            with "none"/"ambiguous"
        """
        if not normalize_name(job.name, self.policy.strip_punctuation):
            return MatchResult(
                matched=False,
                confidence=MatchConfidence.NONE,
                reason="Job has no name to match on",
            )

        survivors = self.filter_candidates(job, deals)

        logger.debug(
            "Deals surviving name and service line filter",
            job_id=job.id,
            mode=self.policy.mode,
            deals_considered=len(deals),
            survivors=len(survivors),
        )

        if not survivors:
            logger.info("No deals matched job, skipping", job_id=job.id, job_name=job.name)
            return MatchResult(
                matched=False,
                confidence=MatchConfidence.NONE,
                reason="Zero matches - skipping",
            )

        if len(survivors) == 1:
            return self._matched(
                job,
                survivors[0],
                MatchConfidence.EXACT,
                "Exactly one deal matched by name and service line",
            )

        if not self.policy.disambiguate:
            return self._ambiguous(
                job,
                survivors,
                f"Multiple matches ({len(survivors)}) - skipping, manual review required",
            )

        return self._disambiguate(job, survivors, company_names_by_deal_id or {})

    def incomplete_candidates(self, job: TrackerJob, deals_seen: int) -> MatchResult:
        """The deal search was cut short, so a single survivor proves nothing."""
        return self._ambiguous(
            job,
            [],
            f"Deal search stopped after {deals_seen} results - manual review required",
        )

    def _disambiguate(
        self,
        job: TrackerJob,
        candidates: list[HubSpotDeal],
        company_names_by_deal_id: dict[str, str],
    ) -> MatchResult:
        steps: list[str] = []

        if job.company_name and company_names_by_deal_id:
            narrowed = [
                deal
                for deal in candidates
                if close_match(
                    job.company_name,
                    company_names_by_deal_id.get(deal.id),
                    self.policy.strip_punctuation,
                )
            ]
            if len(narrowed) == 1:
                return self._matched(
                    job, narrowed[0], MatchConfidence.HIGH, "Disambiguated by company name"
                )
            if narrowed:
                candidates = narrowed
                steps.append("company")
            else:
                # No signal from company; the date step still sees every candidate.
                logger.debug(
                    "Company matched no candidate deal",
                    job_id=job.id,
                    company_name=job.company_name,
                    candidates=len(candidates),
                )
                steps.append("company (no match)")

        job_created = parse_date(job.created_date)
        if job_created is not None:
            window = timedelta(days=self.policy.date_window_days)
            narrowed = []
            for deal in candidates:
                deal_created = parse_date(deal.created_date)
                if deal_created is not None and abs(deal_created - job_created) <= window:
                    narrowed.append(deal)

            if not narrowed:
                return self._ambiguous(
                    job,
                    candidates,
                    f"No deal created within {self.policy.date_window_days} days of the job",
                )
            if len(narrowed) == 1:
                return self._matched(
                    job, narrowed[0], MatchConfidence.HIGH, "Disambiguated by created date"
                )
            candidates = narrowed
            steps.append("created_date")

        tried = ", ".join(steps) if steps else "no disambiguation signal available"
        return self._ambiguous(
            job,
            candidates,
            f"Multiple matches ({len(candidates)}) after disambiguation ({tried}) - "
            "manual review required",
        )
