"""Tests for posting, threads, reactions, edits and search."""

import pytest

from teamchat.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from teamchat.models.channel import ChannelVisibility
from teamchat.services import realtime
from teamchat.services.message_service import (
    add_reaction, extract_mentions, message_service, remove_reaction,
)


@pytest.fixture
def channel(make_channel):
    return make_channel("general", ChannelVisibility.public, ["member"])


@pytest.fixture
def private_channel(make_channel):
    return make_channel("staff", ChannelVisibility.private, ["admin", "moderator"])


class TestReactionHelpers:
    def test_add_is_idempotent_per_user(self):
        reactions = add_reaction([], "👍", "u1")
        reactions = add_reaction(reactions, "👍", "u1")
        assert reactions == [{"emoji": "👍", "users": ["u1"], "count": 1}]
        reactions = add_reaction(reactions, "👍", "u2")
        assert reactions[0]["count"] == 2

    def test_remove_drops_empty_entries(self):
        reactions = add_reaction(add_reaction([], "👍", "u1"), "🎉", "u2")
        reactions = remove_reaction(reactions, "👍", "u1")
        assert [r["emoji"] for r in reactions] == ["🎉"]

    def test_remove_unknown_user_is_noop(self):
        reactions = add_reaction([], "👍", "u1")
        assert remove_reaction(reactions, "👍", "u9") == reactions

    def test_add_does_not_mutate_input(self):
        original = [{"emoji": "👍", "users": ["u1"], "count": 1}]
        add_reaction(original, "👍", "u2")
        assert original[0]["users"] == ["u1"]


def test_extract_mentions_keeps_first_seen_order():
    assert extract_mentions("hi @bob and @alice, @bob again") == ["bob", "alice"]
    assert extract_mentions("") == []


class TestCreate:
    def test_create_broadcasts_and_keeps_known_mentions(self, db, member, channel, make_user, broadcaster):
        make_user("bob")
        payload = message_service.create(db, member, channel.id, "hey @bob and @nobody")
        assert payload["mentions"] == ["bob"]
        assert payload["user"]["username"] == "alice"
        assert broadcaster.events == [(channel.id, realtime.MESSAGE_NEW, payload)]

    def test_inactive_users_are_not_mentioned(self, db, member, channel, make_user):
        make_user("gone", is_active=False)
        payload = message_service.create(db, member, channel.id, "ping @gone")
        assert payload["mentions"] == []

    def test_content_is_validated(self, db, member, channel):
        with pytest.raises(ValidationError):
            message_service.create(db, member, channel.id, "   ")
        with pytest.raises(ValidationError):
            message_service.create(db, member, channel.id, "x" * 2001)

    def test_private_channel_requires_role(self, db, member, private_channel):
        with pytest.raises(AuthorizationError):
            message_service.create(db, member, private_channel.id, "let me in")

    def test_unknown_channel(self, db, member):
        with pytest.raises(ResourceNotFoundError):
            message_service.create(db, member, "missing", "hello")


class TestThreads:
    def test_reply_joins_parent_thread(self, db, member, channel, broadcaster):
        parent = message_service.create(db, member, channel.id, "topic")
        first = message_service.create(db, member, channel.id, "reply one", parent_message_id=parent["id"])
        second = message_service.create(db, member, channel.id, "reply two", parent_message_id=first["id"])

        assert first["thread_id"] == parent["id"]
        assert second["thread_id"] == parent["id"]
        assert broadcaster.names() == [realtime.MESSAGE_NEW, realtime.THREAD_MESSAGE, realtime.THREAD_MESSAGE]

        replies = message_service.thread(db, member, parent["id"])
        assert [r["id"] for r in replies] == [first["id"]]

        in_thread = message_service.list_by_channel(db, member, channel.id, thread_id=parent["id"])
        assert {m["id"] for m in in_thread["messages"]} == {first["id"], second["id"]}

    def test_missing_parent(self, db, member, channel):
        with pytest.raises(ResourceNotFoundError):
            message_service.create(db, member, channel.id, "orphan", parent_message_id="missing")

    def test_parent_from_other_channel(self, db, member, channel, make_channel):
        other = make_channel("random", ChannelVisibility.public, ["member"])
        parent = message_service.create(db, member, other.id, "elsewhere")
        with pytest.raises(ValidationError):
            message_service.create(db, member, channel.id, "reply", parent_message_id=parent["id"])


class TestListing:
    def test_top_level_only_and_has_more(self, db, member, channel):
        ids = [message_service.create(db, member, channel.id, f"m{i}")["id"] for i in range(3)]
        message_service.create(db, member, channel.id, "reply", parent_message_id=ids[0])

        page = message_service.list_by_channel(db, member, channel.id, limit=2)
        assert len(page["messages"]) == 2
        assert page["pagination"] == {"limit": 2, "offset": 0, "has_more": True}

        page = message_service.list_by_channel(db, member, channel.id, limit=10)
        assert {m["id"] for m in page["messages"]} == set(ids)
        assert page["pagination"]["has_more"] is False

    def test_limit_bounds(self, db, member, channel):
        with pytest.raises(ValidationError):
            message_service.list_by_channel(db, member, channel.id, limit=0)
        with pytest.raises(ValidationError):
            message_service.list_by_channel(db, member, channel.id, limit=101)

    def test_private_channel_listing_denied(self, db, member, private_channel):
        with pytest.raises(AuthorizationError):
            message_service.list_by_channel(db, member, private_channel.id)


class TestEditAndDelete:
    def test_author_can_edit(self, db, member, channel, broadcaster):
        message = message_service.create(db, member, channel.id, "typo")
        updated = message_service.update(db, member, message["id"], "fixed")
        assert updated["content"] == "fixed"
        assert updated["is_edited"] is True
        assert updated["edited_at"] is not None
        assert broadcaster.names()[-1] == realtime.MESSAGE_UPDATED

    def test_other_member_cannot_edit_or_delete(self, db, member, channel, make_user):
        message = message_service.create(db, member, channel.id, "mine")
        other = make_user("bob")
        with pytest.raises(AuthorizationError):
            message_service.update(db, other, message["id"], "yours now")
        with pytest.raises(AuthorizationError):
            message_service.delete(db, other, message["id"])

    def test_moderator_can_delete_with_replies(self, db, member, moderator, channel, broadcaster):
        parent = message_service.create(db, member, channel.id, "spam")
        message_service.create(db, member, channel.id, "more spam", parent_message_id=parent["id"])
        message_service.delete(db, moderator, parent["id"])

        assert broadcaster.events[-1] == (channel.id, realtime.MESSAGE_DELETED, {"id": parent["id"]})
        page = message_service.list_by_channel(db, member, channel.id)
        assert page["messages"] == []
        with pytest.raises(ResourceNotFoundError):
            message_service.get(db, member, parent["id"])


class TestReactions:
    def test_add_and_remove(self, db, member, channel, make_user, broadcaster):
        message = message_service.create(db, member, channel.id, "ship it")
        bob = make_user("bob")

        message_service.add_reaction(db, member, message["id"], "🚀")
        message_service.add_reaction(db, member, message["id"], "🚀")
        result = message_service.add_reaction(db, bob, message["id"], "🚀")
        assert result["reactions"] == [{"emoji": "🚀", "users": [member.id, bob.id], "count": 2}]
        assert broadcaster.names()[-1] == realtime.REACTION_UPDATED

        message_service.remove_reaction(db, member, message["id"], "🚀")
        result = message_service.remove_reaction(db, bob, message["id"], "🚀")
        assert result["reactions"] == []


def test_search_skips_unreadable_channels(db, member, admin, channel, private_channel):
    message_service.create(db, member, channel.id, "release notes")
    message_service.create(db, admin, private_channel.id, "release salaries")

    assert [m["content"] for m in message_service.search(db, member, "release")] == ["release notes"]
    assert len(message_service.search(db, admin, "RELEASE")) == 2
    with pytest.raises(AuthorizationError):
        message_service.search(db, member, "release", channel_id=private_channel.id)


def test_search_treats_wildcards_literally(db, member, channel):
    message_service.create(db, member, channel.id, "uptime 100% today")
    message_service.create(db, member, channel.id, "uptime 1000 days")
    message_service.create(db, member, channel.id, "rename a_b")
    message_service.create(db, member, channel.id, "rename axb")

    assert [m["content"] for m in message_service.search(db, member, "100%")] == ["uptime 100% today"]
    assert [m["content"] for m in message_service.search(db, member, "a_b")] == ["rename a_b"]
