"""Tests for SignalFetcher window filtering and search pagination."""

from datetime import datetime, timezone

import httpx
import pytest

from relay.common.schemas import ts_to_datetime
from relay.ingest.fetcher import SignalFetcher
from relay.ingest.reference_store import ReferenceStore, SlackChannel, SlackUser
from relay.ingest.slack_client import SlackClient

START = ts_to_datetime("1700000000.000000")
END = ts_to_datetime("1700003600.000000")


def match(ts, text="hello", channel="C1", **extra):
    return {"ts": ts, "text": text, "channel": {"id": channel, "name": "general"}, "user": "U1", **extra}


def search_page(matches, pages=1):
    return {"ok": True, "messages": {"matches": matches, "paging": {"pages": pages}}}


def make_client(handler):
    return SlackClient("xoxp-test", page_delay=0, min_interval=0, transport=httpx.MockTransport(handler))


@pytest.fixture
def store():
    return ReferenceStore.create(
        users={
            "U0": SlackUser(id="U0", handle="me", display_name="Me"),
            "U1": SlackUser(id="U1", handle="alice", display_name="Alice"),
            "U7": SlackUser(id="U7", handle="asana", display_name="Asana"),
        },
        channels={"C1": SlackChannel(id="C1", name="general")},
        self_id="U0",
    )


def search_handler(pages):
    """pages: list of search responses; page N returns pages[N-1]"""
    calls = []

    def handler(request):
        method = request.url.path.rsplit("/", 1)[-1]
        assert method == "search.messages"
        page = int(request.url.params["page"])
        calls.append(page)
        return httpx.Response(200, json=pages[page - 1])

    return handler, calls


class TestWindow:
    @pytest.mark.asyncio
    async def test_bounds_are_inclusive(self, store):
        handler, _ = search_handler([search_page([
            match("1700000000.000000", "at start"),
            match("1700003600.000000", "at end"),
            match("1699999999.999000", "just before"),
            match("1700003600.000001", "just after"),
        ])])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert sorted(s.title for s in signals) == ["at end", "at start"]

    @pytest.mark.asyncio
    async def test_naive_bounds_are_utc(self, store):
        handler, _ = search_handler([search_page([match("1700000000.000000")])])
        naive_start = datetime(2023, 11, 14, 22, 13, 20)
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, naive_start, END)

        assert len(signals) == 1

    def test_query_widens_dates(self):
        fetcher = SignalFetcher(client=None, search_query="to:me")
        query = fetcher.build_query(
            datetime(2024, 3, 10, 12, tzinfo=timezone.utc),
            datetime(2024, 3, 12, 8, tzinfo=timezone.utc),
        )
        assert query == "to:me after:2024-03-09 before:2024-03-13"


class TestFilters:
    @pytest.mark.asyncio
    async def test_self_authored_dropped(self, store):
        handler, _ = search_handler([search_page([
            match("1700000100.000000", "mine", user="U0"),
            match("1700000200.000000", "theirs"),
        ])])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert [s.title for s in signals] == ["theirs"]

    @pytest.mark.asyncio
    async def test_write_back_author_dropped(self, store):
        handler, _ = search_handler([search_page([
            match("1700000100.000000", "Task created", user="U7"),
            match("1700000200.000000", "Bot post", user="UX", username="ASANA"),
            match("1700000300.000000", "real"),
        ])])
        async with make_client(handler) as client:
            fetcher = SignalFetcher(client, write_back_authors=["asana"])
            signals = await fetcher.fetch(store, START, END)

        assert [s.title for s in signals] == ["real"]

    @pytest.mark.asyncio
    async def test_unknown_channel_dropped(self, store):
        handler, _ = search_handler([search_page([
            match("1700000100.000000", "archived", channel="C404"),
            match("1700000200.000000", "known"),
        ])])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert [s.title for s in signals] == ["known"]

    @pytest.mark.asyncio
    async def test_unknown_channel_kept_without_directory(self):
        empty = ReferenceStore.create(self_id="U0")
        handler, _ = search_handler([search_page([match("1700000100.000000", "x", channel="C404")])])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(empty, START, END)

        assert len(signals) == 1
        assert signals[0].metadata.source_label == "#general"

    @pytest.mark.asyncio
    async def test_match_without_ts_dropped(self, store):
        handler, _ = search_handler([search_page([{"text": "no ts", "channel": "C1"}])])
        async with make_client(handler) as client:
            assert await SignalFetcher(client).fetch(store, START, END) == []


class TestPagination:
    @pytest.mark.asyncio
    async def test_follows_paging_total(self, store):
        handler, calls = search_handler([
            search_page([match("1700000100.000000", "p1")], pages=2),
            search_page([match("1700000200.000000", "p2")], pages=2),
        ])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert calls == [1, 2]
        assert {s.title for s in signals} == {"p1", "p2"}

    @pytest.mark.asyncio
    async def test_page_failure_keeps_earlier_pages(self, store):
        handler, calls = search_handler([
            search_page([match("1700000100.000000", "p1")], pages=3),
            {"ok": False, "error": "ratelimited"},
            search_page([match("1700000300.000000", "p3")], pages=3),
        ])
        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert calls == [1, 2]
        assert [s.title for s in signals] == ["p1"]

    @pytest.mark.asyncio
    async def test_page_cap(self, store):
        pages = [search_page([match("1700000100.000000", f"p{n}")], pages=50) for n in range(1, 51)]
        handler, calls = search_handler(pages)
        async with make_client(handler) as client:
            await SignalFetcher(client, max_pages=10).fetch(store, START, END)

        assert len(calls) == 10


class TestHydration:
    @pytest.mark.asyncio
    async def test_empty_match_is_hydrated_from_history(self, store):
        def handler(request):
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "search.messages":
                return httpx.Response(200, json=search_page([match("1700000100.000000", "")]))
            assert request.url.params["channel"] == "C1"
            return httpx.Response(200, json={
                "ok": True,
                "messages": [{"ts": "1700000100.000000", "text": "full text", "user": "U1"}],
            })

        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert signals[0].title == "full text"
        assert signals[0].metadata.source_label == "#general"

    @pytest.mark.asyncio
    async def test_history_returning_older_message_keeps_stub(self, store):
        def handler(request):
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "search.messages":
                return httpx.Response(200, json=search_page([match("1700000100.000000", "")]))
            return httpx.Response(200, json={
                "ok": True,
                "messages": [{"ts": "1690000000.000000", "text": "unrelated old message"}],
            })

        async with make_client(handler) as client:
            signals = await SignalFetcher(client).fetch(store, START, END)

        assert len(signals) == 1
        assert signals[0].id == "slack-C1-1700000100000000"
        assert START <= signals[0].created <= END
        assert signals[0].title != "unrelated old message"

    @pytest.mark.asyncio
    async def test_thread_failure_returns_empty(self):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "error": "thread_not_found"})

        async with make_client(handler) as client:
            assert await SignalFetcher(client).fetch_thread("C1", "1700000100.000000") == []


class TestThreads:
    @pytest.mark.asyncio
    async def test_replies_keyed_by_signal(self, store):
        requested = []

        def handler(request):
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "search.messages":
                return httpx.Response(200, json=search_page([
                    match("1700000100.000000", "needs input", reply_count=2),
                    match("1700000200.000000", "no replies"),
                ]))
            assert method == "conversations.replies"
            requested.append((request.url.params["channel"], request.url.params["ts"]))
            return httpx.Response(200, json={"ok": True, "messages": [
                {"ts": "1700000100.000000", "text": "needs input", "user": "U1"},
                {"ts": "1700000150.000000", "text": "on it <@U0>", "user": "U0"},
                {"ts": "1700000160.000000", "text": "thanks", "user": "U9", "username": "carol"},
            ]})

        async with make_client(handler) as client:
            fetcher = SignalFetcher(client)
            signals = await fetcher.fetch(store, START, END)
            threads = await fetcher.fetch_threads(signals, store)

        assert requested == [("C1", "1700000100.000000")]
        assert threads == {
            "slack-C1-1700000100000000": [
                {"user": "Me", "text": "on it @Me"},
                {"user": "carol", "text": "thanks"},
            ],
        }

    @pytest.mark.asyncio
    async def test_unavailable_thread_is_left_out(self, store):
        def handler(request):
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "search.messages":
                return httpx.Response(200, json=search_page([match("1700000100.000000", "x", reply_count=1)]))
            return httpx.Response(200, json={"ok": False, "error": "thread_not_found"})

        async with make_client(handler) as client:
            fetcher = SignalFetcher(client)
            signals = await fetcher.fetch(store, START, END)
            assert await fetcher.fetch_threads(signals, store) == {}
