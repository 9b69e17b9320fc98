"""
Congress.gov API client.

Handles fetching bill lists and bill sub-resources from the Congress.gov API.
API Docs: https://api.congress.gov/

Every request goes through one shared limiter, so two calls are always at
least `request_delay` seconds apart no matter which bill they belong to.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from billwatch.config import settings, CONGRESS_GOV_BASE_URL
from billwatch.config.constants import MAX_PAGE_SIZE, SUB_RESOURCE_PAGE_SIZE
from billwatch.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class BillPage:
    """One page of the bill list endpoint."""
    bills: list[dict]
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        """A full page means there are probably more bills after it."""
        return len(self.bills) == self.limit


class CongressGovClient:
    """
    Async client for the Congress.gov API.

    Usage:
        async with CongressGovClient() as client:
            page = await client.list_bills(119, "hr", offset=0, limit=50)
            bill = await client.get_bill(119, "hr", page.bills[0]["number"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = CONGRESS_GOV_BASE_URL,
        request_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.CONGRESS_GOV_API_KEY
        self.base_url = base_url.rstrip("/")
        self.request_delay = (
            request_delay if request_delay is not None else settings.request_delay_seconds
        )
        self.max_retries = max_retries if max_retries is not None else settings.CONGRESS_GOV_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.CONGRESS_GOV_RETRY_DELAY
        self.timeout = timeout if timeout is not None else settings.CONGRESS_GOV_TIMEOUT

        self._client = http_client
        self._owns_client = http_client is None
        self._lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None
        self.request_count = 0

    async def __aenter__(self) -> "CongressGovClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _throttle(self) -> None:
        """Wait until `request_delay` has passed since the previous request."""
        if self._last_request_at is not None:
            elapsed = time.monotonic() - self._last_request_at
            wait = self.request_delay - elapsed
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_request_at = time.monotonic()

    async def _make_request(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """
        Make a request to the Congress.gov API.

        5xx responses and network errors are retried up to `max_retries`
        times, `retry_delay` seconds apart. Any other non-2xx response fails
        immediately.

        Args:
            endpoint: API endpoint (e.g., "/bill/118/hr")
            params: Query parameters

        Returns:
            JSON response as dict

        Raises:
            FetchError: terminal failure, carrying the HTTP status and endpoint
        """
        if not self.api_key:
            raise FetchError("CONGRESS_GOV_API_KEY is not configured", path=endpoint)

        url = f"{self.base_url}{endpoint}"

        # Always include API key and format
        request_params = {
            "api_key": self.api_key,
            "format": "json",
        }
        if params:
            request_params.update(params)

        client = self._get_http_client()
        last_error: Optional[FetchError] = None

        for attempt in range(self.max_retries + 1):
            if attempt:
                logger.warning(
                    f"Retrying {endpoint} in {self.retry_delay}s "
                    f"(attempt {attempt}/{self.max_retries}): {last_error}"
                )
                await asyncio.sleep(self.retry_delay)

            async with self._lock:
                await self._throttle()
                self.request_count += 1
                logger.debug(f"GET {endpoint} {params or {}}")
                try:
                    response = await client.get(url, params=request_params)
                except httpx.TransportError as e:
                    last_error = FetchError(f"Network error: {e}", path=endpoint)
                    continue

            if response.status_code >= 500:
                last_error = FetchError(
                    f"API error {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    path=endpoint,
                )
                continue

            if not response.is_success:
                raise FetchError(
                    f"API error {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    path=endpoint,
                )

            try:
                return response.json()
            except ValueError as e:
                raise FetchError(
                    f"Invalid JSON in response: {e}",
                    status_code=response.status_code,
                    path=endpoint,
                ) from e

        raise last_error

    async def list_bills(
        self,
        congress: int,
        bill_type: str,
        offset: int = 0,
        limit: int = 50,
        sort: str = "updateDate desc",
        from_datetime: Optional[datetime] = None,
        to_datetime: Optional[datetime] = None,
    ) -> BillPage:
        """
        Get one page of bills for a Congress and bill type.

        Args:
            congress: Congress number (e.g., 119)
            bill_type: "hr", "s", "hjres", ...
            offset: Pagination offset
            limit: Page size (max 250)
            sort: Sort order understood by the API
            from_datetime: Only bills updated at or after this time
            to_datetime: Only bills updated before this time

        Returns:
            BillPage with the raw list entries
        """
        limit = min(limit, MAX_PAGE_SIZE)
        endpoint = f"/bill/{congress}/{bill_type.lower()}"
        params: dict[str, Any] = {"offset": offset, "limit": limit, "sort": sort}
        if from_datetime:
            params["fromDateTime"] = format_api_datetime(from_datetime)
        if to_datetime:
            params["toDateTime"] = format_api_datetime(to_datetime)

        response = await self._make_request(endpoint, params)
        return BillPage(bills=response.get("bills") or [], offset=offset, limit=limit)

    async def get_bill(self, congress: int, bill_type: str, number: str) -> dict:
        """
        Get the detail record of one bill.

        Returns:
            The `bill` object of the response
        """
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}"
        response = await self._make_request(endpoint)
        return response.get("bill") or {}

    @staticmethod
    def _has_next_page(response: dict, page: list, limit: int) -> bool:
        """A sub-resource has more pages only if this one is full and the API links a next one."""
        pagination = response.get("pagination") or {}
        return len(page) >= limit and bool(pagination.get("next"))

    async def _get_all(self, endpoint: str, key: str) -> list[dict]:
        """
        Fetch every item of a paged sub-resource.

        Args:
            endpoint: Sub-resource endpoint (e.g., "/bill/119/hr/1/actions")
            key: Response key holding the items (e.g., "actions")

        Returns:
            Items of all pages, in the order the API returns them
        """
        items: list[dict] = []
        offset = 0
        while True:
            response = await self._make_request(
                endpoint, {"offset": offset, "limit": SUB_RESOURCE_PAGE_SIZE}
            )
            page = response.get(key) or []
            items.extend(page)
            if not self._has_next_page(response, page, SUB_RESOURCE_PAGE_SIZE):
                return items
            offset += len(page)

    async def get_bill_actions(self, congress: int, bill_type: str, number: str) -> list[dict]:
        """Get the full action history of a bill (newest first, as the API returns it)."""
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}/actions"
        return await self._get_all(endpoint, "actions")

    async def get_bill_summaries(self, congress: int, bill_type: str, number: str) -> list[dict]:
        """Get every CRS summary version of a bill."""
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}/summaries"
        return await self._get_all(endpoint, "summaries")

    async def get_bill_titles(self, congress: int, bill_type: str, number: str) -> list[dict]:
        """Get the title variations of a bill."""
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}/titles"
        return await self._get_all(endpoint, "titles")

    async def get_bill_subjects(self, congress: int, bill_type: str, number: str) -> dict:
        """
        Get the policy area and legislative subjects of a bill.

        Only `legislativeSubjects` is paged; the policy area comes with the
        first page.
        """
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}/subjects"
        subjects: dict = {}
        legislative: list[dict] = []
        offset = 0
        while True:
            response = await self._make_request(
                endpoint, {"offset": offset, "limit": SUB_RESOURCE_PAGE_SIZE}
            )
            body = response.get("subjects") or {}
            page = body.get("legislativeSubjects") or []
            if offset == 0:
                subjects = dict(body)
            legislative.extend(page)
            if not self._has_next_page(response, page, SUB_RESOURCE_PAGE_SIZE):
                break
            offset += len(page)

        if legislative:
            subjects["legislativeSubjects"] = legislative
        return subjects

    async def get_bill_text_versions(self, congress: int, bill_type: str, number: str) -> list[dict]:
        """Get the published text versions of a bill."""
        endpoint = f"/bill/{congress}/{bill_type.lower()}/{number}/text"
        return await self._get_all(endpoint, "textVersions")


def format_api_datetime(value: datetime) -> str:
    """Format a datetime the way the API's fromDateTime/toDateTime expect (naive = UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")
