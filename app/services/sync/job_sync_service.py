"""
Job sync: Tracker job -> HubSpot custom job record, linked to its deal.

The job upsert is the part that must succeed. Deal matching and
association run afterwards; their failures are recorded on the outcome
and logged, and never undo or fail the upsert.
"""

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger, log_sync_outcome
from app.models.domain.hubspot_domain import AssociationKind, HubSpotDeal
from app.models.domain.sync_domain import RecordAction, RecordOutcome
from app.models.domain.tracker_domain import TrackerJob
from app.services.hubspot.client import (
    COMPANIES,
    DEALS,
    HubSpotClient,
    HubSpotSearchTruncatedError,
)
from app.services.matching.matcher import JobDealMatcher, MatchingPolicy
from app.services.sync.property_mapping import build_job_properties
from app.services.tracker.client import TrackerClient

logger = get_logger(__name__)


class JobSyncService:
    def __init__(
        self,
        tracker: TrackerClient,
        hubspot: HubSpotClient,
        matcher: JobDealMatcher | None = None,
        config: Settings | None = None,
    ):
        self.settings = config or default_settings
        self.tracker = tracker
        self.hubspot = hubspot
        self.matcher = matcher or JobDealMatcher(MatchingPolicy.from_settings(self.settings))

    async def sync_job_by_id(self, job_id: str) -> RecordOutcome:
        """Event mode: fetch one job from Tracker and run the job pipeline."""
        job = await self.tracker.get_job(job_id)
        return await self.sync_job(job)

    async def sync_job(self, job: TrackerJob) -> RecordOutcome:
        """
        Upsert one job into HubSpot and link it to its matching deal.

        Raises:
            HubSpotAPIError: If the job upsert itself fails after retries
        """
        properties = build_job_properties(job, self.settings)
        upsert = await self.hubspot.upsert_by_natural_key(
            self.settings.HUBSPOT_JOB_OBJECT_TYPE,
            self.settings.HUBSPOT_JOB_ID_PROPERTY,
            job.id,
            properties,
        )

        outcome = RecordOutcome(
            record_type="job",
            source_id=job.id,
            action=RecordAction(upsert.action),
            target_id=upsert.record_id,
        )

        try:
            await self._link_deal(job, upsert.record_id, outcome)
        except Exception as e:
            # Partial success: the job record stays even if matching fails
            logger.warning(
                "Deal matching failed for job",
                job_id=job.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome.warnings.append(f"Deal matching failed: {e}")

        log_sync_outcome(
            "job",
            job.id,
            outcome.action.value,
            target_id=outcome.target_id,
            match_confidence=outcome.match.confidence.value if outcome.match else None,
            failed_associations=len(outcome.failed_associations),
        )
        return outcome

    async def _link_deal(self, job: TrackerJob, job_record_id: str, outcome: RecordOutcome) -> None:
        policy = self.matcher.policy
        try:
            deals = await self.hubspot.search_deals_by_name(job.name, exact=policy.mode == "exact")
        except HubSpotSearchTruncatedError as e:
            outcome.match = self.matcher.incomplete_candidates(job, e.results_seen)
            return

        company_names = None
        if policy.disambiguate and job.company_name:
            candidates = self.matcher.filter_candidates(job, deals)
            if len(candidates) > 1:
                company_names = await self._company_names_for(candidates)

        match = self.matcher.match_job_to_deal(job, deals, company_names)
        outcome.match = match
        if not match.matched:
            return

        outcome.associations.append(
            await self.hubspot.create_association(
                AssociationKind.JOB_TO_DEAL, job_record_id, match.deal_id
            )
        )

        deal = next((d for d in deals if d.id == match.deal_id), None)
        company_ids = deal.company_ids if deal and deal.company_ids else None
        if company_ids is None:
            company_ids = await self.hubspot.get_associated_ids(DEALS, match.deal_id, COMPANIES)

        for company_id in company_ids:
            outcome.associations.append(
                await self.hubspot.create_association(
                    AssociationKind.JOB_TO_COMPANY, job_record_id, company_id
                )
            )

    async def _company_names_for(self, deals: list[HubSpotDeal]) -> dict[str, str]:
        """Resolve each deal's first associated company name, caching company lookups."""
        names: dict[str, str] = {}
        cache: dict[str, str | None] = {}

        for deal in deals:
            deal.company_ids = await self.hubspot.get_associated_ids(DEALS, deal.id, COMPANIES)
            if not deal.company_ids:
                continue

            company_id = deal.company_ids[0]
            if company_id not in cache:
                cache[company_id] = await self.hubspot.get_company_name(company_id)
            if cache[company_id]:
                names[deal.id] = cache[company_id]

        return names
