"""
Base Handler

Abstract base class for source-specific message parsers.
Provides a common interface for converting raw provider events to
NormalizedSignals.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from ...common.schemas import NormalizedSignal
from ..reference_store import ReferenceStore


class BaseHandler(ABC):
    """
    Abstract base class for source handlers.

    Each handler must implement:
    - parse_event: Convert one raw event to a NormalizedSignal
    """

    def __init__(self, source_name: str):
        """
        Initialize handler.

        Args:
            source_name: Id prefix of the source (e.g., "slack")
        """
        self.source_name = source_name

    @abstractmethod
    def parse_event(
        self,
        raw_data: Dict[str, Any],
        store: ReferenceStore,
    ) -> Optional[NormalizedSignal]:
        """
        Parse raw event data into a NormalizedSignal.

        Args:
            raw_data: Raw event data from the source
            store: Reference store used to resolve ids

        Returns:
            NormalizedSignal, or None if the event cannot be parsed
        """
        pass

    def is_authored_by(self, raw_data: Dict[str, Any], names: set, store: ReferenceStore) -> bool:
        """
        Check whether an event was written by one of ``names``.

        Override in subclass for source-specific author fields.
        """
        return False
