"""Tests for persisted exclude lists."""

import json

import pytest

from relay.common.schemas import NormalizedSignal, SignalMetadata, SourceProvider, SourceType
from relay.orchestrator.exclude_list import ARCHIVED, BLOCKED, ExcludeList


def signal(signal_id):
    return NormalizedSignal(
        id=signal_id,
        external_id=signal_id,
        source_provider=SourceProvider.NATIVE_MESSAGE,
        title="x",
        created_at="2024-03-10T12:00:00+00:00",
        metadata=SignalMetadata(author="A", source_label="#general", source_type=SourceType.CHANNEL),
    )


@pytest.fixture
def path(tmp_path):
    return tmp_path / "exclude_lists.json"


class TestExcludeList:
    def test_add_is_idempotent(self, path):
        store = ExcludeList(path)
        assert store.add(ARCHIVED, "slack-C1-1") is True
        assert store.add(ARCHIVED, "slack-C1-1") is False
        assert json.loads(path.read_text()) == {ARCHIVED: ["slack-C1-1"]}

    def test_persists_across_instances(self, path):
        ExcludeList(path).add(BLOCKED, "slack-C1-2")
        assert ExcludeList(path).contains(BLOCKED, "slack-C1-2")

    def test_set_replaces(self, path):
        store = ExcludeList(path)
        store.add(ARCHIVED, "a")
        store.set(ARCHIVED, ["b", "c"])
        assert store.get(ARCHIVED) == {"b", "c"}

    def test_filter_uses_both_sets(self, path):
        store = ExcludeList(path)
        store.add(ARCHIVED, "a")
        store.add(BLOCKED, "b")
        visible = store.filter([signal("a"), signal("b"), signal("c")])
        assert [s.id for s in visible] == ["c"]

    def test_corrupt_file_starts_empty(self, path, caplog):
        import logging
        path.write_text("[not an object")
        with caplog.at_level(logging.WARNING, logger="relay.orchestrator.exclude_list"):
            store = ExcludeList(path)
        assert store.get(ARCHIVED) == set()
        assert "Failed to load exclude lists" in caplog.text
