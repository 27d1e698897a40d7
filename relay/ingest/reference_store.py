"""
Reference Store

Lookup structure that maps opaque Slack ids (users, user groups, channels) to
display information. Built once per session and read-only afterwards; a stale
store yields fallback labels rather than errors.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from ..common.errors import ConnectivityError, SlackApiError
from .slack_client import SlackClient

logger = logging.getLogger("relay.ingest.reference_store")

# conversations.list "types" values, one listing each
CHANNEL_CATEGORIES = ("public_channel", "private_channel", "mpim", "im")


@dataclass(frozen=True)
class SlackUser:
    """A workspace member"""
    id: str
    handle: str
    display_name: str
    is_bot: bool = False

    @property
    def first_name(self) -> str:
        parts = self.display_name.split()
        return parts[0] if parts else self.handle


@dataclass(frozen=True)
class SlackChannel:
    """A conversation the account can see"""
    id: str
    name: str = ""
    is_im: bool = False
    is_mpim: bool = False
    user_id: Optional[str] = None  # counterpart for DMs


def _frozen(mapping: Optional[Dict] = None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ReferenceStore:
    """
    Immutable id -> display lookup for one session.

    Usage:
        store = await ReferenceStoreBuilder(client).build()
        store.display_name("U123")  # "Alice Smith"
    """
    users: Mapping[str, SlackUser] = field(default_factory=_frozen)
    groups: Mapping[str, str] = field(default_factory=_frozen)
    channels: Mapping[str, SlackChannel] = field(default_factory=_frozen)
    self_id: str = ""

    @classmethod
    def create(
        cls,
        users: Optional[Dict[str, SlackUser]] = None,
        groups: Optional[Dict[str, str]] = None,
        channels: Optional[Dict[str, SlackChannel]] = None,
        self_id: str = "",
    ) -> "ReferenceStore":
        """Build a store from plain dicts, copying them into read-only views."""
        return cls(
            users=_frozen(users),
            groups=_frozen(groups),
            channels=_frozen(channels),
            self_id=self_id,
        )

    def user(self, user_id: str) -> Optional[SlackUser]:
        return self.users.get(user_id) if user_id else None

    def display_name(self, user_id: str) -> Optional[str]:
        user = self.user(user_id)
        return user.display_name if user else None

    def user_by_handle(self, handle: str) -> Optional[SlackUser]:
        for user in self.users.values():
            if user.handle == handle:
                return user
        return None

    def first_name_for_handle(self, handle: str) -> str:
        """First name for a handle, or the handle itself when unknown."""
        user = self.user_by_handle(handle)
        return user.first_name if user else handle

    def group_handle(self, group_id: str) -> Optional[str]:
        return self.groups.get(group_id) if group_id else None

    def channel(self, channel_id: str) -> Optional[SlackChannel]:
        return self.channels.get(channel_id) if channel_id else None

    @property
    def has_channel_directory(self) -> bool:
        """True when channel listings produced anything to check ids against."""
        return len(self.channels) > 0


# =============================================================================
# Record conversion
# =============================================================================

def parse_user(raw: Dict[str, Any]) -> Optional[SlackUser]:
    """Convert a users.list member, or None when id or display field is missing."""
    if not isinstance(raw, dict):
        return None
    user_id = raw.get("id")
    profile = raw.get("profile") or {}
    display = (
        profile.get("display_name")
        or raw.get("real_name")
        or profile.get("real_name")
        or raw.get("name")
    )
    if not user_id or not display:
        return None
    return SlackUser(
        id=user_id,
        handle=raw.get("name") or display,
        display_name=display,
        is_bot=bool(raw.get("is_bot", False)),
    )


def parse_group(raw: Dict[str, Any]) -> Optional[tuple]:
    """Convert a usergroups.list entry to (id, handle)."""
    if not isinstance(raw, dict):
        return None
    group_id = raw.get("id")
    handle = raw.get("handle") or raw.get("name")
    if not group_id or not handle:
        return None
    return group_id, handle


def parse_channel(raw: Dict[str, Any]) -> Optional[SlackChannel]:
    """Convert a conversations.list entry, or None when archived or id-less."""
    if not isinstance(raw, dict) or not raw.get("id"):
        return None
    if raw.get("is_archived"):
        return None
    return SlackChannel(
        id=raw["id"],
        name=raw.get("name") or "",
        is_im=bool(raw.get("is_im", False)),
        is_mpim=bool(raw.get("is_mpim", False)),
        user_id=raw.get("user"),
    )


# =============================================================================
# Builder
# =============================================================================

class ReferenceStoreBuilder:
    """
    Fetches users, user groups, and channels and assembles a ReferenceStore.

    Only the identity check is fatal. Every other listing degrades to an
    empty (or partial) collection when Slack refuses it.
    """

    def __init__(self, client: SlackClient):
        self._client = client

    async def build(self) -> ReferenceStore:
        """
        Build the store for the authenticated account.

        Raises:
            ConnectivityError: auth.test could not be completed
        """
        try:
            identity = await self._client.call("auth.test")
        except SlackApiError as e:
            raise ConnectivityError(f"Slack identity check failed: {e}") from e

        self_id = identity.get("user_id") or ""
        logger.info("Building reference store for %s", identity.get("user") or self_id)

        users, groups, *channel_lists = await asyncio.gather(
            self._fetch_users(),
            self._fetch_groups(),
            *(self._fetch_channels(category) for category in CHANNEL_CATEGORIES),
        )

        channels: Dict[str, SlackChannel] = {}
        for listing in channel_lists:
            for raw in listing:
                channel = parse_channel(raw)
                if channel:
                    channels[channel.id] = channel

        store = ReferenceStore.create(
            users=users,
            groups=groups,
            channels=channels,
            self_id=self_id,
        )
        logger.info(
            "Reference store ready: %d users, %d groups, %d channels",
            len(store.users), len(store.groups), len(store.channels),
        )
        return store

    async def _fetch_users(self) -> Dict[str, SlackUser]:
        users: Dict[str, SlackUser] = {}
        for raw in await self._client.paginate("users.list", "members"):
            user = parse_user(raw)
            if user:
                users[user.id] = user
            else:
                logger.debug("Skipping malformed user record: %r", raw)
        return users

    async def _fetch_groups(self) -> Dict[str, str]:
        """usergroups.list is not paginated; any failure yields no groups."""
        try:
            data = await self._client.call("usergroups.list")
        except SlackApiError as e:
            logger.warning("User groups unavailable: %s", e)
            return {}

        groups: Dict[str, str] = {}
        for raw in data.get("usergroups") or []:
            parsed = parse_group(raw)
            if parsed:
                groups[parsed[0]] = parsed[1]
        return groups

    async def _fetch_channels(self, category: str) -> List[Dict[str, Any]]:
        return await self._client.paginate(
            "conversations.list",
            "channels",
            types=category,
            exclude_archived=True,
        )
