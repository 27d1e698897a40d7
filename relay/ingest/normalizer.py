"""
Text Normalizer

Rewrites Slack mrkdwn tokens into display text using a ReferenceStore.
Pure and synchronous.

Stage order is fixed: mention tokens may carry literal '<' / '>' in their
labels, so they are resolved before entities are unescaped and before links
are collapsed.
"""

import re
from typing import Callable, List, Optional

from .reference_store import ReferenceStore

UNKNOWN_USER = "@Unknown User"
UNKNOWN_GROUP = "@unknown-group"

# <@U123> or <@U123|label>
USER_MENTION_RE = re.compile(r"<@([A-Z0-9]+)(?:\|([^>]*))?>")
# <!subteam^S123> or <!subteam^S123|@label>
GROUP_MENTION_RE = re.compile(r"<!subteam\^([A-Z0-9]+)(?:\|([^>]*))?>")
# <!here>, <!channel|channel>, <!everyone>
BROADCAST_RE = re.compile(r"<!(here|channel|everyone)(?:\|[^>]*)?>")
# <#C123|general> or <#C123>
CHANNEL_REF_RE = re.compile(r"<#([A-Z0-9]+)(?:\|([^>]*))?>")
# <https://x.y|text> or <mailto:a@b>; the scheme keeps "<foo>" intact
LINK_RE = re.compile(r"<([a-zA-Z][a-zA-Z0-9+.\-]*:[^|>\s]+)(?:\|([^>]*))?>")
WHITESPACE_RE = re.compile(r"\s+")


def _label(raw: Optional[str]) -> str:
    return (raw or "").strip().lstrip("@").strip()


def resolve_user_mentions(text: str, store: ReferenceStore) -> str:
    def _replace(match: re.Match) -> str:
        name = store.display_name(match.group(1))
        if name:
            return f"@{name}"
        label = _label(match.group(2))
        return f"@{label}" if label else UNKNOWN_USER

    return USER_MENTION_RE.sub(_replace, text)


def resolve_group_mentions(text: str, store: ReferenceStore) -> str:
    def _replace(match: re.Match) -> str:
        handle = store.group_handle(match.group(1))
        if handle:
            return f"@{handle.lstrip('@')}"
        label = _label(match.group(2))
        return f"@{label}" if label else UNKNOWN_GROUP

    return GROUP_MENTION_RE.sub(_replace, text)


def resolve_broadcasts(text: str, store: ReferenceStore) -> str:
    return BROADCAST_RE.sub(lambda m: f"@{m.group(1)}", text)


def resolve_channel_refs(text: str, store: ReferenceStore) -> str:
    def _replace(match: re.Match) -> str:
        channel = store.channel(match.group(1))
        if channel and channel.name:
            return f"#{channel.name}"
        label = (match.group(2) or "").strip()
        return f"#{label}" if label else f"#{match.group(1)}"

    return CHANNEL_REF_RE.sub(_replace, text)


def unescape_entities(text: str, store: ReferenceStore = None) -> str:
    # &amp; last so "&amp;lt;" decodes to the literal "&lt;"
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


def collapse_links(text: str, store: ReferenceStore = None) -> str:
    def _replace(match: re.Match) -> str:
        display = match.group(2)
        return display if display else match.group(1)

    return LINK_RE.sub(_replace, text)


def collapse_whitespace(text: str, store: ReferenceStore = None) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


STAGES: List[Callable[[str, ReferenceStore], str]] = [
    resolve_user_mentions,
    resolve_group_mentions,
    resolve_broadcasts,
    resolve_channel_refs,
    unescape_entities,
    collapse_links,
    collapse_whitespace,
]


def normalize_text(text: Optional[str], store: ReferenceStore) -> str:
    """
    Convert raw Slack text into display text.

    Args:
        text: Raw message text (may be None)
        store: Reference store used to resolve ids

    Returns:
        Normalized single-line text (possibly empty)
    """
    if not text:
        return ""
    for stage in STAGES:
        text = stage(text, store)
    return text
