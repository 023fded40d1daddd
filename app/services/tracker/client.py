"""
TrackerRMS API client.
Low-level read-only client for jobs, placements and candidates.
Every call is wrapped in bounded exponential-backoff retry.
"""

from typing import Any

import httpx

from app.config import Settings, settings as default_settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.tracker_domain import TrackerCandidate, TrackerJob, TrackerPlacement
from app.services.retry import retry_with_backoff

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
PAGE_KEYS = ("data", "results", "items")


class TrackerAPIError(Exception):
    """Custom exception for Tracker API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = True,
        response_data: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.response_data = response_data


def _is_retryable(error: Exception) -> bool:
    return getattr(error, "retryable", True)


class TrackerClient:
    """
    Client for the TrackerRMS REST API.

    Bearer-token auth, fixed timeout, JSON bodies. Errors surface as
    TrackerAPIError; network errors, 429 and 5xx are retried.
    """

    def __init__(self, config: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = config or default_settings
        self._client = self._create_client(transport)

    def _create_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        """Create async HTTP client for the Tracker API."""
        return httpx.AsyncClient(
            base_url=self.settings.TRACKER_API_URL.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.settings.TRACKER_API_KEY}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self.settings.TRACKER_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get(self, path: str, operation: str, params: dict | None = None) -> Any:
        async def _attempt():
            try:
                response = await self._client.get(path, params=params)
            except httpx.RequestError as e:
                raise TrackerAPIError(f"Tracker {operation} request failed: {e}") from e
            return self._handle_api_response(response, operation)

        return await retry_with_backoff(
            _attempt,
            self.settings.MAX_RETRIES,
            self.settings.RETRY_BASE_DELAY_SECONDS,
            f"Tracker.{operation}",
            is_retryable=_is_retryable,
        )

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Validate a Tracker API response.

        Returns:
            Parsed JSON body

        Raises:
            TrackerAPIError: On non-2xx status or unparsable body
        """
        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error("Failed to parse Tracker response", operation=operation, error=str(e))
                raise TrackerAPIError(
                    f"Invalid response format from Tracker {operation}: {e}", retryable=False
                ) from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {"raw": response.text[:200] if response.text else ""}

        logger.error(
            "Tracker API request failed",
            operation=operation,
            status_code=response.status_code,
        )
        raise TrackerAPIError(
            f"Tracker {operation} failed (HTTP {response.status_code})",
            status_code=response.status_code,
            retryable=response.status_code in RETRY_STATUS_CODES,
            response_data=error_data,
        )

    @staticmethod
    def _page_items(body: Any) -> list[dict]:
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            for key in PAGE_KEYS:
                if isinstance(body.get(key), list):
                    return body[key]
        return []

    async def list_jobs(self, limit: int, offset: int) -> list[TrackerJob]:
        body = await self._get("/jobs", "list_jobs", params={"limit": limit, "offset": offset})
        jobs = [TrackerJob.from_api(item) for item in self._page_items(body)]
        logger.debug("Fetched Tracker jobs page", limit=limit, offset=offset, count=len(jobs))
        return jobs

    async def get_job(self, job_id: str) -> TrackerJob:
        body = await self._get(f"/jobs/{job_id}", "get_job")
        return TrackerJob.from_api(body)

    async def list_placements(self, limit: int, offset: int) -> list[TrackerPlacement]:
        body = await self._get(
            "/placements", "list_placements", params={"limit": limit, "offset": offset}
        )
        placements = [TrackerPlacement.from_api(item) for item in self._page_items(body)]
        logger.debug(
            "Fetched Tracker placements page", limit=limit, offset=offset, count=len(placements)
        )
        return placements

    async def get_placement(self, placement_id: str) -> TrackerPlacement:
        body = await self._get(f"/placements/{placement_id}", "get_placement")
        return TrackerPlacement.from_api(body)

    async def get_candidate(self, candidate_id: str) -> TrackerCandidate:
        body = await self._get(f"/candidates/{candidate_id}", "get_candidate")
        return TrackerCandidate.from_api(body)
