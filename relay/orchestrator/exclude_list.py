"""
Exclude Lists

Named string sets (archived signal ids, blocked signal ids) persisted to
~/.relay/exclude_lists.json. The ingestion core never touches this store;
the orchestrator filters signal lists with it.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from ..common.config import EXCLUDE_LIST_PATH
from ..common.schemas import NormalizedSignal

logger = logging.getLogger("relay.orchestrator.exclude_list")

ARCHIVED = "archived_ids"
BLOCKED = "blocked_ids"


class ExcludeList:
    """
    Key-value store of string sets.

    Usage:
        store = ExcludeList()
        store.add(ARCHIVED, signal.id)
        visible = store.filter(signals)
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize exclude lists.

        Args:
            path: Path to the JSON file (default: ~/.relay/exclude_lists.json)
        """
        self._path = Path(path) if path else EXCLUDE_LIST_PATH
        self._sets: Dict[str, Set[str]] = {}
        self._load()

    def _load(self) -> None:
        """Load sets from disk"""
        if not self._path.exists():
            self._sets = {}
            return

        try:
            with open(self._path) as f:
                data = json.load(f)
            self._sets = {
                str(name): {str(v) for v in values}
                for name, values in data.items()
                if isinstance(values, list)
            }
        except (json.JSONDecodeError, IOError, AttributeError) as e:
            logger.warning("Failed to load exclude lists: %s", e)
            self._sets = {}

    def _save(self) -> None:
        """Save sets to disk"""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {name: sorted(values) for name, values in self._sets.items()}
        with open(self._path, "w") as f:
            json.dump(data, f, indent=2)

    def get(self, name: str) -> Set[str]:
        return set(self._sets.get(name, set()))

    def set(self, name: str, values: Iterable[str]) -> None:
        self._sets[name] = {str(v) for v in values}
        self._save()

    def add(self, name: str, value: str) -> bool:
        """Insert one value. Returns False (and writes nothing) if already present."""
        current = self._sets.setdefault(name, set())
        if value in current:
            return False
        current.add(value)
        self._save()
        return True

    def contains(self, name: str, value: str) -> bool:
        return value in self._sets.get(name, set())

    def filter(
        self,
        signals: Iterable[NormalizedSignal],
        names: Iterable[str] = (ARCHIVED, BLOCKED),
    ) -> List[NormalizedSignal]:
        """Signals whose id is in none of the named sets."""
        excluded: Set[str] = set()
        for name in names:
            excluded |= self._sets.get(name, set())
        return [s for s in signals if s.id not in excluded]
