"""
HubSpot CRM API client.

Search, create, update and associate CRM records. Custom job/placement
records and placed-candidate contacts are written through
``upsert_by_natural_key``, which searches for the tracker id property before
creating and holds a per-id lock for the whole search -> create/update so
two tasks never race to create the same record.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.hubspot_domain import (
    AssociationKind,
    AssociationResult,
    AssociationStatus,
    HubSpotDeal,
    UpsertResult,
)
from app.services.matching.normalizer import normalize_name
from app.services.retry import retry_with_backoff

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
SEARCH_LIMIT = 100

DEALS = "deals"
COMPANIES = "companies"
CONTACTS = "contacts"


class HubSpotAPIError(Exception):
    """Custom exception for HubSpot API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = True,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.response_data = response_data or {}


class HubSpotSearchTruncatedError(HubSpotAPIError):
    """A search matched more pages than the configured cap."""

    def __init__(self, object_type: str, results_seen: int):
        super().__init__(
            f"HubSpot search on {object_type} still had more results after {results_seen}",
            retryable=False,
        )
        self.object_type = object_type
        self.results_seen = results_seen


def _is_retryable(error: Exception) -> bool:
    return getattr(error, "retryable", True)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class HubSpotClient:
    """
    Client for the HubSpot CRM v3/v4 APIs.

    Object types for the custom records, and every property name, come from
    settings so deployments can map their own schema.
    """

    def __init__(self, config: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = config or default_settings
        self._client = self._create_client(transport)
        self._upsert_locks = KeyedLock()

    def _create_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        """Create async HTTP client for the HubSpot API."""
        return httpx.AsyncClient(
            base_url=self.settings.HUBSPOT_API_URL.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.settings.HUBSPOT_ACCESS_TOKEN}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self.settings.HUBSPOT_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def object_type_for(self, role: str) -> str:
        """Resolve a logical role ("job", "deal", ...) to a HubSpot object type."""
        object_types = {
            "job": self.settings.HUBSPOT_JOB_OBJECT_TYPE,
            "placement": self.settings.HUBSPOT_PLACEMENT_OBJECT_TYPE,
            "deal": DEALS,
            "company": COMPANIES,
            "contact": CONTACTS,
        }
        return object_types[role]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise HubSpotAPIError(f"HubSpot {operation} request failed: {e}") from e
        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Validate a HubSpot API response.

        Returns:
            dict: Parsed response data ({} for empty bodies)

        Raises:
            HubSpotAPIError: On non-2xx status
        """
        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                raise HubSpotAPIError(
                    f"Invalid response format from HubSpot {operation}: {e}", retryable=False
                ) from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {"raw": response.text[:200] if response.text else ""}

        message = error_data.get("message") if isinstance(error_data, dict) else None
        logger.debug(
            "HubSpot API request failed",
            operation=operation,
            status_code=response.status_code,
            error_message=message,
        )
        raise HubSpotAPIError(
            f"HubSpot {operation} failed (HTTP {response.status_code}): {message or 'unknown error'}",
            status_code=response.status_code,
            retryable=response.status_code in RETRY_STATUS_CODES,
            response_data=error_data if isinstance(error_data, dict) else {},
        )

    async def _with_retry(self, operation, label: str):
        return await retry_with_backoff(
            operation,
            self.settings.MAX_RETRIES,
            self.settings.RETRY_BASE_DELAY_SECONDS,
            f"HubSpot.{label}",
            is_retryable=_is_retryable,
        )

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def _search(
        self,
        object_type: str,
        filter_groups: list[dict],
        properties: list[str] | None = None,
        limit: int = SEARCH_LIMIT,
        after: str | None = None,
    ) -> dict:
        body = {
            "filterGroups": filter_groups,
            "properties": properties or [],
            "limit": limit,
        }
        if after:
            body["after"] = after
        return await self._request(
            "POST", f"/crm/v3/objects/{object_type}/search", "search", json=body
        )

    async def search_records(
        self,
        object_type: str,
        filters: list[dict] | None = None,
        filter_groups: list[dict] | None = None,
        properties: list[str] | None = None,
        limit: int = SEARCH_LIMIT,
        max_pages: int | None = None,
    ) -> list[dict]:
        """
        Search records with a single filter list (AND) or explicit filter groups (OR of ANDs).

        Follows ``paging.next.after`` until HubSpot reports no further page.
        Each page is retried on its own.

        Raises:
            HubSpotSearchTruncatedError: If results remain after ``max_pages`` pages
        """
        groups = filter_groups if filter_groups is not None else [{"filters": filters or []}]
        max_pages = max_pages or self.settings.HUBSPOT_SEARCH_MAX_PAGES

        results: list[dict] = []
        after = None
        for page in range(1, max_pages + 1):
            data = await self._with_retry(
                lambda after=after: self._search(object_type, groups, properties, limit, after),
                f"search({object_type}, page {page})",
            )
            results.extend(data.get("results", []))
            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return results

        logger.warning(
            "HubSpot search truncated at page cap",
            object_type=object_type,
            max_pages=max_pages,
            results_seen=len(results),
        )
        raise HubSpotSearchTruncatedError(object_type, len(results))

    async def _find_record_id(self, object_type: str, id_property: str, natural_id: str) -> str | None:
        data = await self._search(
            object_type,
            [{"filters": [{"propertyName": id_property, "operator": "EQ", "value": natural_id}]}],
            limit=1,
        )
        results = data.get("results", [])
        return str(results[0]["id"]) if results else None

    async def find_record_id(self, object_type: str, id_property: str, natural_id: str) -> str | None:
        """Return the HubSpot id of the record carrying ``natural_id``, if any."""
        return await self._with_retry(
            lambda: self._find_record_id(object_type, id_property, natural_id),
            f"find({object_type}:{natural_id})",
        )

    async def _create(self, object_type: str, properties: dict[str, Any]) -> str:
        data = await self._request(
            "POST",
            f"/crm/v3/objects/{object_type}",
            "create",
            json={"properties": properties},
        )
        return str(data["id"])

    async def _update(self, object_type: str, record_id: str, properties: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            f"/crm/v3/objects/{object_type}/{record_id}",
            "update",
            json={"properties": properties},
        )

    async def create_record(self, object_type: str, properties: dict[str, Any]) -> str:
        return await self._with_retry(
            lambda: self._create(object_type, properties), f"create({object_type})"
        )

    async def update_record(self, object_type: str, record_id: str, properties: dict[str, Any]) -> None:
        await self._with_retry(
            lambda: self._update(object_type, record_id, properties),
            f"update({object_type}:{record_id})",
        )

    async def upsert_by_natural_key(
        self,
        object_type: str,
        id_property: str,
        natural_id: str,
        properties: dict[str, Any],
    ) -> UpsertResult:
        """
        Create or update the record whose ``id_property`` equals ``natural_id``.

        Search and write run under a lock held for this (object type, natural
        id), so concurrent upserts of the same id are serialized. Properties
        are written in full on every call (last write wins).
        """

        async def _upsert() -> UpsertResult:
            existing_id = await self._find_record_id(object_type, id_property, natural_id)
            if existing_id:
                await self._update(object_type, existing_id, properties)
                logger.info(
                    "Updated HubSpot record",
                    object_type=object_type,
                    natural_id=natural_id,
                    record_id=existing_id,
                )
                return UpsertResult(record_id=existing_id, created=False)

            record_id = await self._create(object_type, properties)
            logger.info(
                "Created HubSpot record",
                object_type=object_type,
                natural_id=natural_id,
                record_id=record_id,
            )
            return UpsertResult(record_id=record_id, created=True)

        async with self._upsert_locks.hold(f"{object_type}:{natural_id}"):
            return await self._with_retry(_upsert, f"upsert({object_type}:{natural_id})")

    # ------------------------------------------------------------------
    # Deals and companies (read-only)
    # ------------------------------------------------------------------

    def _deal_from_result(self, result: dict) -> HubSpotDeal:
        props = result.get("properties") or {}
        return HubSpotDeal(
            id=str(result["id"]),
            name=props.get(self.settings.HUBSPOT_DEAL_NAME_PROPERTY) or "",
            service_line=props.get(self.settings.HUBSPOT_DEAL_SERVICE_LINE_PROPERTY) or None,
            created_date=props.get(self.settings.HUBSPOT_DEAL_CREATED_DATE_PROPERTY) or None,
        )

    async def search_deals_by_name(self, name: str, exact: bool = True) -> list[HubSpotDeal]:
        """
        Find candidate deals for a job name.

        Exact mode asks HubSpot for equal names. Otherwise the search uses
        the longest token of the name and returns a superset that the
        matcher narrows down. Every result page is read; a search that runs
        past the page cap raises instead of returning a partial list.

        Raises:
            HubSpotSearchTruncatedError: If the result set exceeds the page cap
        """
        name_property = self.settings.HUBSPOT_DEAL_NAME_PROPERTY
        tokens = normalize_name(name, strip_punctuation=True).split()

        if exact or not tokens:
            name_filter = {"propertyName": name_property, "operator": "EQ", "value": name}
        else:
            token = max(tokens, key=len)
            name_filter = {
                "propertyName": name_property,
                "operator": "CONTAINS_TOKEN",
                "value": f"*{token}*",
            }

        results = await self.search_records(
            DEALS,
            filters=[name_filter],
            properties=[
                name_property,
                self.settings.HUBSPOT_DEAL_SERVICE_LINE_PROPERTY,
                self.settings.HUBSPOT_DEAL_CREATED_DATE_PROPERTY,
            ],
        )
        deals = [self._deal_from_result(r) for r in results]
        logger.debug("Deal search completed", job_name=name, exact=exact, deal_count=len(deals))
        return deals

    async def get_associated_ids(self, from_type: str, from_id: str, to_type: str) -> list[str]:
        """List ids of ``to_type`` records associated with one record."""

        async def _read():
            data = await self._request(
                "GET",
                f"/crm/v4/objects/{from_type}/{from_id}/associations/{to_type}",
                "read_associations",
            )
            return [str(item["toObjectId"]) for item in data.get("results", [])]

        return await self._with_retry(_read, f"associations({from_type}:{from_id}->{to_type})")

    async def get_company_name(self, company_id: str) -> str | None:
        name_property = self.settings.HUBSPOT_COMPANY_NAME_PROPERTY

        async def _read():
            data = await self._request(
                "GET",
                f"/crm/v3/objects/{COMPANIES}/{company_id}",
                "get_company",
                params={"properties": name_property},
            )
            return (data.get("properties") or {}).get(name_property) or None

        return await self._with_retry(_read, f"get_company({company_id})")

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    def _association_type_id(self, kind: AssociationKind) -> int | None:
        return getattr(self.settings, f"HUBSPOT_{kind.name}_ASSOCIATION_TYPE_ID", None)

    async def create_association(
        self, kind: AssociationKind, from_id: str, to_id: str
    ) -> AssociationResult:
        """
        Link two records. An existing edge (HTTP 409) counts as success.

        Failures are returned as a ``failed`` result instead of raised, so the
        caller can report them next to the record they belong to.
        """
        from_type = self.object_type_for(kind.from_role)
        to_type = self.object_type_for(kind.to_role)
        type_id = self._association_type_id(kind)

        if type_id is None:
            path = f"/crm/v4/objects/{from_type}/{from_id}/associations/default/{to_type}/{to_id}"
            body = None
        else:
            path = f"/crm/v4/objects/{from_type}/{from_id}/associations/{to_type}/{to_id}"
            body = [{"associationCategory": "USER_DEFINED", "associationTypeId": type_id}]

        async def _associate() -> AssociationStatus:
            try:
                await self._request("PUT", path, "create_association", json=body)
            except HubSpotAPIError as e:
                if e.status_code == 409:
                    logger.debug("Association already exists", kind=kind.value, from_id=from_id, to_id=to_id)
                    return AssociationStatus.EXISTS
                raise
            return AssociationStatus.CREATED

        try:
            status = await self._with_retry(_associate, f"associate({kind.value}:{from_id}->{to_id})")
        except HubSpotAPIError as e:
            logger.warning(
                "Failed to create association",
                kind=kind.value,
                from_id=from_id,
                to_id=to_id,
                error=str(e),
            )
            return AssociationResult(kind, from_id, to_id, AssociationStatus.FAILED, error=str(e))

        if status == AssociationStatus.CREATED:
            logger.info("Created association", kind=kind.value, from_id=from_id, to_id=to_id)
        return AssociationResult(kind, from_id, to_id, status)
