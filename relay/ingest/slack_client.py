"""
Slack Web API Client

Thin async wrapper over httpx for the handful of Web API methods Relay uses.
All rate-limit state lives on the instance, so separate sessions never
interfere with each other.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..common.errors import SlackApiError

logger = logging.getLogger("relay.ingest.slack_client")

SLACK_API_URL = "https://slack.com/api"

# Pagination ceilings bound memory and latency of one listing
MAX_PAGES = 10
MAX_ITEMS = 1000
DEFAULT_PAGE_LIMIT = 200


class SlackClient:
    """
    Async client for the Slack Web API.

    Usage:
        async with SlackClient(token="xoxp-...") as client:
            identity = await client.call("auth.test")
            users = await client.paginate("users.list", "members")
    """

    def __init__(
        self,
        token: str,
        *,
        timeout: float = 30.0,
        page_delay: float = 0.5,
        min_interval: float = 0.5,
        base_url: str = SLACK_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Slack client.

        Args:
            token: Bearer token (user token, xoxp-...)
            timeout: Per-request timeout in seconds
            page_delay: Fixed sleep between pages of one listing
            min_interval: Minimum spacing of throttled one-off requests
            base_url: API root, overridable for tests
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.page_delay = page_delay
        self.min_interval = min_interval
        self._last_request_at: Optional[float] = None
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "SlackClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def call(self, method: str, **params: Any) -> Dict[str, Any]:
        """
        Call one Web API method.

        Returns:
            The decoded JSON body

        Raises:
            SlackApiError: transport failure, non-2xx status, undecodable
                body, or ``ok: false``
        """
        try:
            response = await self._http.get(f"/{method}", params=params)
        except httpx.HTTPError as e:
            raise SlackApiError(method, f"transport_error: {e}") from e

        if response.status_code != 200:
            raise SlackApiError(method, "http_error", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise SlackApiError(method, "invalid_json", response.status_code) from e

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error", "unknown_error") if isinstance(data, dict) else "unexpected_body"
            raise SlackApiError(method, error)

        return data

    async def throttled_call(self, method: str, **params: Any) -> Dict[str, Any]:
        """Like call(), but spaced at least ``min_interval`` after the previous throttled call."""
        if self._last_request_at is not None and self.min_interval > 0:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
        self._last_request_at = time.monotonic()
        return await self.call(method, **params)

    async def paginate(
        self,
        method: str,
        list_key: str,
        *,
        max_pages: int = MAX_PAGES,
        max_items: int = MAX_ITEMS,
        **params: Any,
    ) -> List[Dict[str, Any]]:
        """
        Follow ``response_metadata.next_cursor`` through a listing.

        Stops when the cursor is absent, ``max_items`` is reached, or
        ``max_pages`` pages were requested. A failure on any page ends the
        listing and returns what was accumulated so far.
        """
        params.setdefault("limit", DEFAULT_PAGE_LIMIT)
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        for page in range(max_pages):
            if page > 0 and self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

            query = dict(params)
            if cursor:
                query["cursor"] = cursor

            try:
                data = await self.call(method, **query)
            except SlackApiError as e:
                logger.warning(
                    "%s unavailable on page %d, keeping %d items: %s",
                    method, page + 1, len(items), e,
                )
                break

            batch = data.get(list_key) or []
            if not isinstance(batch, list):
                logger.warning("%s returned a non-list %r field, stopping", method, list_key)
                break

            items.extend(batch[: max_items - len(items)])
            if len(items) >= max_items:
                logger.debug("%s hit the item cap (%d)", method, max_items)
                break

            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break

        return items
