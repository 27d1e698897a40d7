"""
Relay Schemas

Normalized signals produced by ingestion and proposed tasks produced by the
suggestion engine.
"""

from .signal import (
    NormalizedSignal,
    SignalMetadata,
    FileInfo,
    SourceProvider,
    SignalStatus,
    SourceType,
    EMPTY_TITLE,
    generate_signal_id,
    ts_to_datetime,
)
from .task import ProposedTask, SourceLink

__all__ = [
    "NormalizedSignal",
    "SignalMetadata",
    "FileInfo",
    "SourceProvider",
    "SignalStatus",
    "SourceType",
    "EMPTY_TITLE",
    "generate_signal_id",
    "ts_to_datetime",
    "ProposedTask",
    "SourceLink",
]
