"""
Relay Ingest

Slack signal ingestion: reference store construction, text normalization,
message parsing, and windowed search.

Key Components:
- SlackClient: Async Web API client with bounded pagination
- ReferenceStoreBuilder: Users, groups, and channels for id resolution
- normalize_text: Mention, entity, and link rewriting
- SlackMessageParser: Raw message -> NormalizedSignal
- SignalFetcher: Windowed, filtered search
"""

from .slack_client import SlackClient
from .reference_store import ReferenceStore, ReferenceStoreBuilder, SlackUser, SlackChannel
from .normalizer import normalize_text
from .handlers import SlackMessageParser
from .fetcher import SignalFetcher

__all__ = [
    "SlackClient",
    "ReferenceStore",
    "ReferenceStoreBuilder",
    "SlackUser",
    "SlackChannel",
    "normalize_text",
    "SlackMessageParser",
    "SignalFetcher",
]
