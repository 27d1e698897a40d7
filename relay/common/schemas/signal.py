"""
Normalized Signal Schema

Every provider record (Slack message, Asana task) becomes one NormalizedSignal.
Signals are value objects: frozen after creation and free of any reference to
the lookup structures that produced them.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


EMPTY_TITLE = "[Empty Message]"


# ============================================================================
# Enums
# ============================================================================

class SourceProvider(str, Enum):
    """Closed set of provider tags"""
    NATIVE_MESSAGE = "native-message"
    LINKED_DOCUMENT = "linked-document"
    TRACKER_ITEM = "tracker-item"
    THIRD_PARTY_DOC = "third-party-doc"


class SignalStatus(str, Enum):
    """Work status of a signal"""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class SourceType(str, Enum):
    """Where a signal was seen"""
    CHANNEL = "channel"
    DIRECT_MESSAGE = "direct-message"
    PROJECT = "project"


# ============================================================================
# Sub-models
# ============================================================================

class FileInfo(BaseModel):
    """First attached file of a message, when present"""
    model_config = ConfigDict(frozen=True)

    title: str = ""
    name: str = ""
    preview: str = ""
    mimetype: str = ""
    size: int = 0


class SignalMetadata(BaseModel):
    """Resolved, display-ready context of a signal"""
    model_config = ConfigDict(frozen=True)

    author: str = Field(..., description="Resolved display name or raw id")
    source_label: str = Field(..., description='"#channel", "DM: Name", "DM: A, B" or a project name')
    source_type: SourceType
    project: Optional[str] = None
    due: Optional[str] = None
    file: Optional[FileInfo] = None
    channel_id: Optional[str] = Field(default=None, description="Provider conversation id, for thread lookups")
    thread_ts: Optional[str] = None
    reply_count: int = 0


# ============================================================================
# Main model
# ============================================================================

class NormalizedSignal(BaseModel):
    """The unified, provider-agnostic record"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable composite id, identical across syncs")
    external_id: str = Field(..., description="Provider-native id used for write-back")
    source_provider: SourceProvider
    title: str = Field(..., min_length=1)
    url: str = ""
    status: SignalStatus = SignalStatus.TODO
    created_at: str = Field(..., description="ISO-8601 time of the provider event")
    metadata: SignalMetadata

    @property
    def created(self) -> datetime:
        """created_at as an aware datetime (Asana uses a trailing 'Z')"""
        moment = datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))
        return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)

    @property
    def is_direct_message(self) -> bool:
        return self.metadata.source_type == SourceType.DIRECT_MESSAGE


def generate_signal_id(prefix: str, channel_id: str, ts: str) -> str:
    """
    Build the stable signal id.

    Format: {prefix}-{channel_id}-{ts with the '.' separator removed}
    Example: slack-C024BE91L-1700000000000100
    """
    return f"{prefix}-{channel_id}-{ts.replace('.', '')}"


def ts_to_datetime(ts: str) -> datetime:
    """Convert a Slack "seconds.micros" timestamp to an aware UTC datetime.

    The fraction is read as digits rather than through float so that two
    equal timestamps always compare equal to the microsecond.
    """
    seconds, _, fraction = str(ts).partition(".")
    micros = int(fraction[:6].ljust(6, "0")) if fraction else 0
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc) + timedelta(microseconds=micros)
