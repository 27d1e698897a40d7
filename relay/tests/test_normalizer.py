"""Tests for Slack text normalization."""

import pytest

from relay.ingest.normalizer import (
    UNKNOWN_GROUP,
    UNKNOWN_USER,
    collapse_links,
    normalize_text,
    unescape_entities,
)
from relay.ingest.reference_store import ReferenceStore, SlackChannel, SlackUser


@pytest.fixture
def store():
    return ReferenceStore.create(
        users={
            "U1": SlackUser(id="U1", handle="alice", display_name="Alice"),
            "U2": SlackUser(id="U2", handle="bob", display_name="Bob Jones"),
        },
        groups={"S1": "eng-team"},
        channels={"C1": SlackChannel(id="C1", name="general")},
        self_id="U1",
    )


class TestUserMentions:
    def test_resolved_mention_uses_display_name(self, store):
        assert normalize_text("hi <@U2>", store) == "hi @Bob Jones"

    def test_resolved_mention_ignores_inline_label(self, store):
        assert normalize_text("<@U1|someone-else>", store) == "@Alice"

    def test_unknown_id_falls_back_to_label(self, store):
        assert normalize_text("ping <@U999|carol>", store) == "ping @carol"

    def test_unknown_id_without_label(self, store):
        assert normalize_text("ping <@U999>", store) == f"ping {UNKNOWN_USER}"

    def test_every_mention_is_rewritten(self, store):
        text = normalize_text("<@U1> <@U999|zed> <@U998>", store)
        assert "@Alice" in text
        assert "@zed" in text
        assert UNKNOWN_USER in text
        assert "<@" not in text


class TestGroupAndBroadcastMentions:
    def test_known_group(self, store):
        assert normalize_text("<!subteam^S1>", store) == "@eng-team"

    def test_unknown_group_label(self, store):
        assert normalize_text("<!subteam^S9|@design>", store) == "@design"

    def test_unknown_group_without_label(self, store):
        assert normalize_text("<!subteam^S9>", store) == UNKNOWN_GROUP

    @pytest.mark.parametrize("token,expected", [
        ("<!here>", "@here"),
        ("<!channel>", "@channel"),
        ("<!everyone|everyone>", "@everyone"),
        ("<!here|@whatever>", "@here"),
    ])
    def test_broadcast_keywords(self, store, token, expected):
        assert normalize_text(token, store) == expected


class TestChannelRefs:
    def test_known_channel(self, store):
        assert normalize_text("see <#C1>", store) == "see #general"

    def test_unknown_channel_uses_label(self, store):
        assert normalize_text("see <#C9|random>", store) == "see #random"


class TestEntitiesAndLinks:
    def test_unescape_order(self):
        assert unescape_entities("a &lt;b&gt; &amp; c") == "a <b> & c"
        assert unescape_entities("&amp;lt;") == "&lt;"

    def test_link_with_display_text(self):
        assert collapse_links("<https://ex.com|this>") == "this"

    def test_bare_link(self):
        assert collapse_links("<https://ex.com/a>") == "https://ex.com/a"

    def test_mailto_link(self):
        assert collapse_links("<mailto:a@b.com|mail me>") == "mail me"

    def test_non_link_brackets_survive(self, store):
        assert normalize_text("a &lt;foo&gt; b", store) == "a <foo> b"

    def test_whitespace_collapsed(self, store):
        assert normalize_text("  a \n\n b\t c  ", store) == "a b c"

    def test_empty_text(self, store):
        assert normalize_text("", store) == ""
        assert normalize_text(None, store) == ""


class TestScenario:
    def test_mention_and_link(self, store):
        text = normalize_text("<@U1> check <https://ex.com|this>", store)
        assert text == "@Alice check this"
