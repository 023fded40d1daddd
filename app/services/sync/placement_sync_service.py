"""
Placement sync: Tracker placement -> HubSpot custom placement record.

Placements are dependent records. One is only written when its status is
one of the known statuses and its job already exists in HubSpot; otherwise
it is skipped and counted, never created orphaned. A HubSpot contact is
created or updated for the candidate only for placed outcomes.
"""

import asyncio

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger, log_sync_outcome
from app.models.domain.hubspot_domain import AssociationKind
from app.models.domain.sync_domain import RecordAction, RecordOutcome
from app.models.domain.tracker_domain import TrackerCandidate, TrackerJob, TrackerPlacement
from app.services.hubspot.client import COMPANIES, CONTACTS, DEALS, HubSpotClient
from app.services.sync.placement_rules import is_allowed_for_sync, is_candidate_contact_eligible
from app.services.sync.property_mapping import build_contact_properties, build_placement_properties
from app.services.tracker.client import TrackerAPIError, TrackerClient

logger = get_logger(__name__)

SKIP_INVALID_STATUS = "invalid_status"
SKIP_JOB_NOT_SYNCED = "job_not_synced"
SKIP_JOB_NOT_FOUND = "job_not_found"
SKIP_CANDIDATE_NOT_FOUND = "candidate_not_found"


class PlacementSyncService:
    def __init__(
        self,
        tracker: TrackerClient,
        hubspot: HubSpotClient,
        config: Settings | None = None,
    ):
        self.settings = config or default_settings
        self.tracker = tracker
        self.hubspot = hubspot

    async def sync_placement_by_id(self, placement_id: str) -> RecordOutcome:
        """Event mode: fetch one placement from Tracker and run the placement pipeline."""
        placement = await self.tracker.get_placement(placement_id)
        return await self.sync_placement(placement)

    def _skipped(self, placement: TrackerPlacement, reason: str) -> RecordOutcome:
        log_sync_outcome(
            "placement",
            placement.id,
            RecordAction.SKIPPED.value,
            skip_reason=reason,
            status=placement.status,
            job_id=placement.job_id,
        )
        return RecordOutcome(
            record_type="placement",
            source_id=placement.id,
            action=RecordAction.SKIPPED,
            skip_reason=reason,
        )

    async def sync_placement(self, placement: TrackerPlacement) -> RecordOutcome:
        """
        Sync one placement and, when eligible, its candidate contact.

        Returns:
            RecordOutcome: created/updated, or skipped with a reason (a job
            or candidate Tracker no longer has counts as a skip)

        Raises:
            TrackerAPIError / HubSpotAPIError: If fetching related records or
            the placement upsert fails after retries
        """
        if not is_allowed_for_sync(placement.status):
            return self._skipped(placement, SKIP_INVALID_STATUS)

        hubspot_job_id = await self.hubspot.find_record_id(
            self.settings.HUBSPOT_JOB_OBJECT_TYPE,
            self.settings.HUBSPOT_JOB_ID_PROPERTY,
            placement.job_id,
        )
        if not hubspot_job_id:
            return self._skipped(placement, SKIP_JOB_NOT_SYNCED)

        job, candidate = await asyncio.gather(
            self._job_for(placement), self._candidate_for(placement), return_exceptions=True
        )
        for fetched, reason in ((job, SKIP_JOB_NOT_FOUND), (candidate, SKIP_CANDIDATE_NOT_FOUND)):
            if isinstance(fetched, TrackerAPIError) and fetched.status_code == 404:
                return self._skipped(placement, reason)
        for fetched in (job, candidate):
            if isinstance(fetched, BaseException):
                raise fetched

        properties = build_placement_properties(
            placement, job.name, candidate.full_name, self.settings
        )
        upsert = await self.hubspot.upsert_by_natural_key(
            self.settings.HUBSPOT_PLACEMENT_OBJECT_TYPE,
            self.settings.HUBSPOT_PLACEMENT_ID_PROPERTY,
            placement.id,
            properties,
        )

        outcome = RecordOutcome(
            record_type="placement",
            source_id=placement.id,
            action=RecordAction(upsert.action),
            target_id=upsert.record_id,
        )

        await self._associate_placement(outcome, upsert.record_id, hubspot_job_id)

        if is_candidate_contact_eligible(placement.status):
            await self._sync_candidate_contact(placement, candidate, upsert.record_id, outcome)
        else:
            logger.debug(
                "Candidate contact not eligible for placement status",
                placement_id=placement.id,
                status=placement.status,
            )

        log_sync_outcome(
            "placement",
            placement.id,
            outcome.action.value,
            target_id=outcome.target_id,
            contact_action=outcome.contact_action.value if outcome.contact_action else None,
            failed_associations=len(outcome.failed_associations),
        )
        return outcome

    async def _job_for(self, placement: TrackerPlacement) -> TrackerJob:
        return placement.job or await self.tracker.get_job(placement.job_id)

    async def _candidate_for(self, placement: TrackerPlacement) -> TrackerCandidate:
        return placement.candidate or await self.tracker.get_candidate(placement.candidate_id)

    async def _associate_placement(
        self, outcome: RecordOutcome, placement_record_id: str, hubspot_job_id: str
    ) -> None:
        """Link placement -> job, and -> each deal / company the job is already linked to."""
        outcome.associations.append(
            await self.hubspot.create_association(
                AssociationKind.PLACEMENT_TO_JOB, placement_record_id, hubspot_job_id
            )
        )

        try:
            deal_ids = await self.hubspot.get_associated_ids(
                self.settings.HUBSPOT_JOB_OBJECT_TYPE, hubspot_job_id, DEALS
            )
            company_ids: list[str] = []
            for deal_id in deal_ids:
                outcome.associations.append(
                    await self.hubspot.create_association(
                        AssociationKind.PLACEMENT_TO_DEAL, placement_record_id, deal_id
                    )
                )
                for company_id in await self.hubspot.get_associated_ids(DEALS, deal_id, COMPANIES):
                    if company_id not in company_ids:
                        company_ids.append(company_id)

            for company_id in company_ids:
                outcome.associations.append(
                    await self.hubspot.create_association(
                        AssociationKind.PLACEMENT_TO_COMPANY, placement_record_id, company_id
                    )
                )
        except Exception as e:
            logger.warning(
                "Failed to resolve deal/company links for placement",
                placement_record_id=placement_record_id,
                hubspot_job_id=hubspot_job_id,
                error=str(e),
            )
            outcome.warnings.append(f"Deal/company lookup failed: {e}")

    async def _sync_candidate_contact(
        self,
        placement: TrackerPlacement,
        candidate: TrackerCandidate,
        placement_record_id: str,
        outcome: RecordOutcome,
    ) -> None:
        # Re-check right before writing a person record
        if not is_candidate_contact_eligible(placement.status):
            logger.error(
                "Refusing candidate contact sync for ineligible status",
                placement_id=placement.id,
                status=placement.status,
            )
            return

        properties = build_contact_properties(candidate, self.settings)
        try:
            upsert = await self.hubspot.upsert_by_natural_key(
                CONTACTS,
                self.settings.HUBSPOT_CONTACT_ID_PROPERTY,
                candidate.id,
                properties,
            )
        except Exception as e:
            logger.error(
                "Candidate contact sync failed",
                placement_id=placement.id,
                candidate_id=candidate.id,
                error=str(e),
            )
            outcome.contact_action = RecordAction.FAILED
            outcome.warnings.append(f"Contact sync failed for candidate {candidate.id}: {e}")
            return

        outcome.contact_action = RecordAction(upsert.action)
        outcome.associations.append(
            await self.hubspot.create_association(
                AssociationKind.PLACEMENT_TO_CONTACT, placement_record_id, upsert.record_id
            )
        )
