"""
Signal Fetcher

Runs the paginated Slack search for one time window, filters the matches, and
maps the survivors through the message parser.

Filters, in order:
1. Event time outside [start, end] (both bounds inclusive)
2. Authored by the account itself or by a write-back integration account
3. Channel unknown to a populated reference store (archived or inaccessible)
4. Parser returned None (no timestamp)
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..common.config import DEFAULT_SEARCH_QUERY
from ..common.errors import SlackApiError
from ..common.schemas import NormalizedSignal, ts_to_datetime
from .handlers import SlackMessageParser
from .normalizer import normalize_text
from .reference_store import ReferenceStore
from .slack_client import MAX_PAGES, SlackClient

logger = logging.getLogger("relay.ingest.fetcher")

SEARCH_PAGE_SIZE = 100


def _as_utc(moment: datetime) -> datetime:
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


class SignalFetcher:
    """
    Fetches normalized signals for a time window.

    Ordering of the returned list is not guaranteed; callers sort if needed.

    Usage:
        fetcher = SignalFetcher(client, write_back_authors=["asana"])
        signals = await fetcher.fetch(store, start, end)
    """

    def __init__(
        self,
        client: SlackClient,
        parser: Optional[SlackMessageParser] = None,
        *,
        search_query: str = DEFAULT_SEARCH_QUERY,
        write_back_authors: Iterable[str] = (),
        page_size: int = SEARCH_PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        hydrate: bool = True,
    ):
        """
        Initialize fetcher.

        Args:
            client: Slack API client
            parser: Message parser (default: SlackMessageParser())
            search_query: Base search query; date modifiers are appended
            write_back_authors: Account names whose messages are never ingested
            page_size: Matches requested per search page
            max_pages: Page cap for one fetch
            hydrate: Fill empty-text matches from conversation history
        """
        self._client = client
        self._parser = parser or SlackMessageParser()
        self.search_query = search_query
        self.write_back_authors = {name.lower() for name in write_back_authors if name}
        self.page_size = page_size
        self.max_pages = max_pages
        self.hydrate = hydrate

    def build_query(self, start: datetime, end: datetime) -> str:
        """Slack date modifiers are exclusive and day-granular, so widen by a day."""
        after = (start.date() - timedelta(days=1)).isoformat()
        before = (end.date() + timedelta(days=1)).isoformat()
        return f"{self.search_query} after:{after} before:{before}"

    async def fetch(
        self,
        store: ReferenceStore,
        start: datetime,
        end: datetime,
    ) -> List[NormalizedSignal]:
        """
        Fetch signals whose event time lies in [start, end].

        A failing page ends pagination; signals from earlier pages are kept.
        """
        start, end = _as_utc(start), _as_utc(end)
        query = self.build_query(start, end)
        signals: List[NormalizedSignal] = []

        for page in range(1, self.max_pages + 1):
            if page > 1 and self._client.page_delay > 0:
                await asyncio.sleep(self._client.page_delay)

            try:
                data = await self._client.call(
                    "search.messages",
                    query=query,
                    count=self.page_size,
                    page=page,
                    sort="timestamp",
                    sort_dir="desc",
                )
            except SlackApiError as e:
                logger.warning(
                    "Search page %d unavailable, keeping %d signals: %s", page, len(signals), e
                )
                break

            messages = data.get("messages") or {}
            matches = messages.get("matches") or []
            for match in matches:
                signal = await self._process_match(match, store, start, end)
                if signal is not None:
                    signals.append(signal)

            paging = messages.get("paging") or messages.get("pagination") or {}
            total_pages = paging.get("pages") or paging.get("page_count") or 1
            if not matches or page >= total_pages:
                break

        logger.info("Fetched %d signals between %s and %s", len(signals), start, end)
        return signals

    async def _process_match(
        self,
        match: Dict[str, Any],
        store: ReferenceStore,
        start: datetime,
        end: datetime,
    ) -> Optional[NormalizedSignal]:
        if not isinstance(match, dict):
            return None

        ts = match.get("ts")
        if not ts:
            logger.debug("Dropping match without ts")
            return None
        try:
            event_time = ts_to_datetime(str(ts))
        except (ValueError, OverflowError, OSError):
            logger.debug("Dropping match with unusable ts %r", ts)
            return None

        if event_time < start or event_time > end:
            return None

        if store.self_id and match.get("user") == store.self_id:
            return None
        if self._parser.is_authored_by(match, self.write_back_authors, store):
            logger.debug("Dropping write-back message %s", ts)
            return None

        channel_id = self._channel_id(match)
        if channel_id and store.has_channel_directory and store.channel(channel_id) is None:
            logger.debug("Dropping match from unknown channel %s", channel_id)
            return None

        if self.hydrate and not match.get("text") and not match.get("files") and channel_id:
            match = await self._hydrate(match, channel_id)

        return self._parser.parse_event(match, store)

    async def _hydrate(self, match: Dict[str, Any], channel_id: str) -> Dict[str, Any]:
        """Search sometimes returns text-less stubs; fetch the full message."""
        try:
            data = await self._client.throttled_call(
                "conversations.history",
                channel=channel_id,
                latest=match["ts"],
                inclusive=True,
                limit=1,
            )
        except SlackApiError as e:
            logger.debug("Hydration failed for %s: %s", match.get("ts"), e)
            return match

        history = data.get("messages") or []
        if not history or not isinstance(history[0], dict):
            return match
        # "latest" returns the newest message at or before ts; a deleted stub yields an older one
        if str(history[0].get("ts")) != str(match["ts"]):
            logger.debug("Hydration for %s returned a different message, keeping stub", match["ts"])
            return match
        merged = {**match, **history[0]}
        merged["ts"] = match["ts"]
        merged["channel"] = match.get("channel")
        return merged

    async def fetch_thread(self, channel_id: str, ts: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Replies of a thread, or an empty list when unavailable."""
        try:
            data = await self._client.throttled_call(
                "conversations.replies", channel=channel_id, ts=ts, limit=limit
            )
        except SlackApiError as e:
            logger.warning("Thread %s/%s unavailable: %s", channel_id, ts, e)
            return []
        return [m for m in data.get("messages") or [] if isinstance(m, dict)]

    async def fetch_threads(
        self,
        signals: Iterable[NormalizedSignal],
        store: Optional[ReferenceStore] = None,
        limit: int = 10,
    ) -> Dict[str, List[Dict[str, str]]]:
        """
        Thread replies for every signal that has any, keyed by signal id.

        Each reply is {"user": display name, "text": normalized text}; the
        thread parent itself is left out.
        """
        store = store or ReferenceStore.create()
        threads: Dict[str, List[Dict[str, str]]] = {}
        for signal in signals:
            meta = signal.metadata
            if not meta.channel_id or meta.reply_count <= 0:
                continue
            parent_ts = meta.thread_ts or signal.external_id
            replies = []
            for message in await self.fetch_thread(meta.channel_id, parent_ts, limit=limit):
                if str(message.get("ts")) == parent_ts:
                    continue
                user_id = message.get("user") or ""
                replies.append({
                    "user": store.display_name(user_id) or message.get("username") or user_id,
                    "text": normalize_text(message.get("text"), store),
                })
            if replies:
                threads[signal.id] = replies
        logger.debug("Fetched threads for %d signals", len(threads))
        return threads

    @staticmethod
    def _channel_id(match: Dict[str, Any]) -> str:
        channel = match.get("channel")
        if isinstance(channel, dict):
            return channel.get("id") or ""
        return channel or ""
