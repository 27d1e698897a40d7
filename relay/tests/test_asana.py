"""Tests for the Asana adapter."""

import json

import httpx
import pytest

from relay.common.schemas import SignalStatus, SourceProvider, SourceType
from relay.tracker.asana import DEFAULT_PROJECT, AsanaAdapter

API_PREFIX = "/api/1.0"


class FakeAsana:
    """Routes (method, path) to canned bodies and records every request"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        path = request.url.path[len(API_PREFIX):]
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"errors": [{"message": "Not found"}]})
        status, payload = route
        return httpx.Response(status, json=payload)

    def writes(self):
        return [r for r in self.requests if r[0] in ("POST", "PUT")]


def make_adapter(fake):
    return AsanaAdapter("asana-test", transport=httpx.MockTransport(fake))


ME = (200, {"data": {"gid": "1", "workspaces": [{"gid": "W1", "name": "Acme"}]}})
PROJECTS = (200, {"data": [{"gid": "P1", "name": "Sales"}, {"gid": "P2", "name": "Ops"}]})


class TestReads:
    @pytest.mark.asyncio
    async def test_assigned_items_become_signals(self):
        fake = FakeAsana({
            ("GET", "/users/me"): ME,
            ("GET", "/tasks"): (200, {"data": [
                {
                    "gid": "101",
                    "name": "Review contract",
                    "permalink_url": "https://app.asana.com/0/0/101",
                    "due_on": "2024-03-15",
                    "projects": [{"name": "Sales"}],
                    "assignee_status": "today",
                    "created_at": "2024-03-01T10:00:00.000Z",
                },
                {"gid": "102", "name": "", "created_at": "2024-03-02T10:00:00.000Z"},
                {"gid": "103"},
            ]}),
        })
        async with make_adapter(fake) as asana:
            signals = await asana.list_assigned_items()

        assert len(signals) == 2
        first = signals[0]
        assert first.id == "asana-101"
        assert first.external_id == "101"
        assert first.source_provider == SourceProvider.TRACKER_ITEM
        assert first.status == SignalStatus.IN_PROGRESS
        assert first.metadata.source_type == SourceType.PROJECT
        assert first.metadata.source_label == "Sales"
        assert first.metadata.due == "2024-03-15"
        assert signals[1].metadata.source_label == DEFAULT_PROJECT
        assert signals[1].title == "Untitled Task"
        assert signals[0].created.isoformat() == "2024-03-01T10:00:00+00:00"

    @pytest.mark.asyncio
    async def test_workspace_is_cached(self):
        fake = FakeAsana({("GET", "/users/me"): ME, ("GET", "/projects"): PROJECTS})
        async with make_adapter(fake) as asana:
            await asana.list_categories()
            await asana.list_categories()

        assert [r[1] for r in fake.requests].count("/users/me") == 1

    @pytest.mark.asyncio
    async def test_categories(self):
        fake = FakeAsana({("GET", "/users/me"): ME, ("GET", "/projects"): PROJECTS})
        async with make_adapter(fake) as asana:
            assert await asana.list_categories() == ["Sales", "Ops"]

    @pytest.mark.asyncio
    async def test_categories_fallback(self):
        fake = FakeAsana({("GET", "/users/me"): (401, {"errors": []})})
        async with make_adapter(fake) as asana:
            assert await asana.list_categories() == [DEFAULT_PROJECT]

    @pytest.mark.asyncio
    async def test_categories_fallback_for_empty_workspace(self):
        fake = FakeAsana({("GET", "/users/me"): ME, ("GET", "/projects"): (200, {"data": []})})
        async with make_adapter(fake) as asana:
            assert await asana.list_categories() == [DEFAULT_PROJECT]

    @pytest.mark.asyncio
    async def test_assigned_items_empty_on_failure(self):
        fake = FakeAsana({("GET", "/users/me"): ME, ("GET", "/tasks"): (500, {})})
        async with make_adapter(fake) as asana:
            assert await asana.list_assigned_items() == []


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_item_in_matching_project(self):
        fake = FakeAsana({
            ("GET", "/users/me"): ME,
            ("GET", "/projects"): PROJECTS,
            ("POST", "/tasks"): (201, {"data": {"gid": "T1"}}),
        })
        async with make_adapter(fake) as asana:
            gid = await asana.create_item("Send deck", "Ops", "from Slack")

        assert gid == "T1"
        _, _, body = fake.writes()[0]
        assert body["data"]["projects"] == ["P2"]
        assert body["data"]["assignee"] == "me"
        assert body["data"]["notes"] == "from Slack"

    @pytest.mark.asyncio
    async def test_create_item_unknown_project(self):
        fake = FakeAsana({
            ("GET", "/users/me"): ME,
            ("GET", "/projects"): PROJECTS,
            ("POST", "/tasks"): (201, {"data": {"gid": "T1"}}),
        })
        async with make_adapter(fake) as asana:
            await asana.create_item("Send deck", "My Tasks")

        _, _, body = fake.writes()[0]
        assert "projects" not in body["data"]

    @pytest.mark.asyncio
    async def test_create_item_failure(self):
        fake = FakeAsana({
            ("GET", "/users/me"): ME,
            ("GET", "/projects"): PROJECTS,
            ("POST", "/tasks"): (400, {"errors": [{"message": "bad"}]}),
        })
        async with make_adapter(fake) as asana:
            assert await asana.create_item("Send deck", "Ops") is None

    @pytest.mark.asyncio
    async def test_create_item_rejects_empty_title(self):
        fake = FakeAsana({})
        async with make_adapter(fake) as asana:
            assert await asana.create_item("", "Ops") is None
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_sub_item_and_complete(self):
        fake = FakeAsana({
            ("POST", "/tasks/T1/subtasks"): (201, {"data": {"gid": "S1"}}),
            ("PUT", "/tasks/T1"): (200, {"data": {"gid": "T1", "completed": True}}),
        })
        async with make_adapter(fake) as asana:
            assert await asana.create_sub_item("T1", "Cut branch")
            assert await asana.complete_item("T1")
            assert not await asana.complete_item("")

        assert fake.writes()[1][2] == {"data": {"completed": True}}
