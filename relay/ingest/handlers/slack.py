"""
Slack Handler

Converts raw Slack message objects (search matches or history entries) into
NormalizedSignals. All id resolution happens here, eagerly, so the resulting
signal never needs the ReferenceStore again.
"""

import logging
import re
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urlparse

from ...common.schemas import (
    EMPTY_TITLE,
    FileInfo,
    NormalizedSignal,
    SignalMetadata,
    SignalStatus,
    SourceProvider,
    SourceType,
    generate_signal_id,
    ts_to_datetime,
)
from ..normalizer import normalize_text, unescape_entities
from ..reference_store import ReferenceStore
from .base import BaseHandler

logger = logging.getLogger("relay.ingest.slack")

DM_MARKER = "DM: "
UNKNOWN_DM_USER = "Unknown User"
UNKNOWN_CHANNEL = "unknown-channel"
UNKNOWN_AUTHOR = "Unknown"

# Group DM synthetic names look like "mpdm-alice--bob--carol-1"
MPDM_PREFIX = "mpdm-"
MPDM_SEPARATOR = "--"
MPDM_SUFFIX_RE = re.compile(r"-\d+$")

# Raw provider ids: C024BE91L, D0123ABCD, G01ABCDEF2
RAW_ID_RE = re.compile(r"^[A-Z0-9]{9,12}$")

DOCUMENT_DOMAINS = ("docs.google.com", "drive.google.com")
DOC_GLYPH = "📄"

INLINE_LINK_RE = re.compile(r"<(https?://[^|>\s]+)(?:\|[^>]*)?>")
DRIVE_AUTHOR_RE = re.compile(r"^(.*?)\s+(?:commented|replied|edited)\b", re.IGNORECASE)
URL_KEYS = ("url", "title_link", "from_url", "original_url")


def is_document_url(url: str) -> bool:
    """True when the url's host is a known external-document domain."""
    if not url:
        return False
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in DOCUMENT_DOMAINS)


def _walk_urls(node: Any) -> Iterator[str]:
    """Yield every url-like string value in a nested blocks/attachments tree."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key in URL_KEYS and isinstance(value, str):
                yield value
            else:
                yield from _walk_urls(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_urls(item)


class SlackMessageParser(BaseHandler):
    """
    Parser for Slack message objects.

    Produces:
    - source label: "#channel", "DM: Name", "DM: A, B"
    - canonical link and provider classification
    - stable id: slack-<channel>-<ts digits>

    Returns None only when the event has no usable timestamp.
    """

    def __init__(self, archive_url: str = "https://slack.com/archives"):
        """
        Initialize Slack parser.

        Args:
            archive_url: Root used to synthesize message deep links
        """
        super().__init__("slack")
        self._archive_url = archive_url.rstrip("/")

    def parse_event(
        self,
        raw_data: Dict[str, Any],
        store: ReferenceStore,
    ) -> Optional[NormalizedSignal]:
        ts = raw_data.get("ts")
        if not ts:
            logger.debug("Skipping event without ts")
            return None
        ts = str(ts)
        try:
            created = ts_to_datetime(ts)
        except (ValueError, OverflowError, OSError):
            logger.debug("Skipping event with unusable ts %r", ts)
            return None

        channel_id, inline_name, inline_mpim = self._channel_ref(raw_data)
        source_label = self.resolve_source_label(channel_id, inline_name, store, inline_mpim)
        source_type = (
            SourceType.DIRECT_MESSAGE if source_label.startswith(DM_MARKER) else SourceType.CHANNEL
        )

        author = self.resolve_author(raw_data, store)
        title = normalize_text(raw_data.get("text"), store)
        file_info = self._file_info(raw_data)

        url = self.resolve_url(raw_data, channel_id, ts)
        provider = SourceProvider.NATIVE_MESSAGE
        if is_document_url(url):
            provider = SourceProvider.LINKED_DOCUMENT

        if self.is_drive_notification(raw_data):
            provider = SourceProvider.THIRD_PARTY_DOC
            url, title, author = self._apply_drive_override(raw_data, store, url, title, author)

        if not title and file_info:
            title = file_info.title or file_info.name
        if not title:
            title = EMPTY_TITLE

        return NormalizedSignal(
            id=generate_signal_id(self.source_name, channel_id or UNKNOWN_CHANNEL, ts),
            external_id=ts,
            source_provider=provider,
            title=title,
            url=url,
            status=SignalStatus.TODO,
            created_at=created.isoformat(),
            metadata=SignalMetadata(
                author=author,
                source_label=source_label,
                source_type=source_type,
                file=file_info,
                channel_id=channel_id or None,
                thread_ts=str(raw_data["thread_ts"]) if raw_data.get("thread_ts") else None,
                reply_count=self._reply_count(raw_data),
            ),
        )

    # =========================================================================
    # Source label
    # =========================================================================

    def resolve_source_label(
        self,
        channel_id: str,
        inline_name: str,
        store: ReferenceStore,
        inline_mpim: bool = False,
    ) -> str:
        """First match wins: DM, group DM, named channel, inline name, raw id."""
        channel = store.channel(channel_id)
        if channel:
            if channel.is_im:
                name = store.display_name(channel.user_id or "")
                return f"{DM_MARKER}{name or UNKNOWN_DM_USER}"
            if channel.is_mpim and channel.name:
                return self.group_dm_label(channel.name, store)
            if channel.name:
                return f"#{channel.name}"

        if inline_name and not RAW_ID_RE.match(inline_name):
            if inline_mpim or inline_name.startswith(MPDM_PREFIX):
                return self.group_dm_label(inline_name, store)
            return f"#{inline_name}"

        return channel_id or UNKNOWN_CHANNEL

    def group_dm_label(self, name: str, store: ReferenceStore) -> str:
        """
        "mpdm-alice--bob--carol-1" -> "DM: Alice, Bob, Carol"

        The account's own handle is left out when others remain. Unknown
        handles are shown as the raw fragment.
        """
        core = name[len(MPDM_PREFIX):] if name.startswith(MPDM_PREFIX) else name
        core = MPDM_SUFFIX_RE.sub("", core)
        handles = [fragment for fragment in core.split(MPDM_SEPARATOR) if fragment]

        self_user = store.user(store.self_id)
        if self_user:
            others = [h for h in handles if h != self_user.handle]
            if others:
                handles = others

        if not handles:
            return f"{DM_MARKER}{name}"
        return DM_MARKER + ", ".join(store.first_name_for_handle(h) for h in handles)

    # =========================================================================
    # Author
    # =========================================================================

    def resolve_author(self, raw_data: Dict[str, Any], store: ReferenceStore) -> str:
        user_id = raw_data.get("user") or ""
        name = store.display_name(user_id)
        if name:
            return name
        return raw_data.get("username") or user_id or UNKNOWN_AUTHOR

    def is_authored_by(self, raw_data: Dict[str, Any], names: set, store: ReferenceStore) -> bool:
        """Literal, case-insensitive match on username, handle, or display name."""
        if not names:
            return False
        wanted = {n.lower() for n in names}
        candidates = [raw_data.get("username") or ""]
        user = store.user(raw_data.get("user") or "")
        if user:
            candidates.extend([user.handle, user.display_name])
        return any(c.lower() in wanted for c in candidates if c)

    # =========================================================================
    # Link resolution
    # =========================================================================

    def resolve_url(self, raw_data: Dict[str, Any], channel_id: str, ts: str) -> str:
        """
        Priority: file link, document reference in blocks/attachments,
        inline link in text, permalink field, synthesized deep link.
        """
        files = raw_data.get("files") or []
        if files and isinstance(files[0], dict):
            link = files[0].get("permalink") or files[0].get("url_private")
            if link:
                return link

        for candidate in _walk_urls([raw_data.get("blocks"), raw_data.get("attachments")]):
            if is_document_url(candidate):
                return unescape_entities(candidate)

        match = INLINE_LINK_RE.search(raw_data.get("text") or "")
        if match:
            return unescape_entities(match.group(1))

        if raw_data.get("permalink"):
            return raw_data["permalink"]

        if channel_id:
            return f"{self._archive_url}/{channel_id}/p{ts.replace('.', '')}"
        return ""

    # =========================================================================
    # Google Drive notifications
    # =========================================================================

    def is_drive_notification(self, raw_data: Dict[str, Any]) -> bool:
        """Structural markers of the Google Drive app posting on someone's behalf."""
        names = [
            raw_data.get("username") or "",
            (raw_data.get("bot_profile") or {}).get("name") or "",
        ]
        names.extend(
            att.get("service_name") or ""
            for att in raw_data.get("attachments") or []
            if isinstance(att, dict)
        )
        return any("drive" in name.lower() for name in names)

    def _apply_drive_override(
        self,
        raw_data: Dict[str, Any],
        store: ReferenceStore,
        url: str,
        title: str,
        author: str,
    ) -> Tuple[str, str, str]:
        match = DRIVE_AUTHOR_RE.match(normalize_text(raw_data.get("text"), store))
        if match and match.group(1):
            author = match.group(1)

        attachments = [a for a in raw_data.get("attachments") or [] if isinstance(a, dict)]
        if attachments:
            att = attachments[0]
            for key in ("title_link", "from_url"):
                if is_document_url(att.get(key) or ""):
                    url = unescape_entities(att[key])
                    break

            doc_title = normalize_text(att.get("title"), store)
            body = normalize_text(
                att.get("text") or att.get("pretext") or att.get("fallback"), store
            )
            if doc_title and body:
                return url, f"{DOC_GLYPH} {doc_title}: {body}", author
            if doc_title or body:
                return url, f"{DOC_GLYPH} {doc_title or body}", author

        if title:
            title = f"{DOC_GLYPH} {title}"
        return url, title, author

    # =========================================================================
    # Helpers
    # =========================================================================

    def _channel_ref(self, raw_data: Dict[str, Any]) -> Tuple[str, str, bool]:
        """(channel id, inline name, inline group-DM flag) from either payload shape."""
        channel = raw_data.get("channel")
        if isinstance(channel, dict):
            return (
                channel.get("id") or "",
                channel.get("name") or "",
                bool(channel.get("is_mpim", False)),
            )
        return channel or "", raw_data.get("channel_name") or "", False

    @staticmethod
    def _reply_count(raw_data: Dict[str, Any]) -> int:
        try:
            return max(int(raw_data.get("reply_count") or 0), 0)
        except (TypeError, ValueError):
            return 0

    def _file_info(self, raw_data: Dict[str, Any]) -> Optional[FileInfo]:
        files = raw_data.get("files") or []
        if not files or not isinstance(files[0], dict):
            return None
        f = files[0]
        try:
            size = int(f.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return FileInfo(
            title=f.get("title") or "",
            name=f.get("name") or "",
            preview=f.get("preview") or "",
            mimetype=f.get("mimetype") or "",
            size=size,
        )
