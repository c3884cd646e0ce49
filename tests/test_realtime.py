"""Tests for websocket rooms and the realtime broadcaster."""

import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect

import teamchat.main as main_module
from teamchat.models.channel import ChannelVisibility
from teamchat.services import realtime
from teamchat.services.cache_service import cache_service

from conftest import auth_headers


class FakeSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


@pytest.fixture
def published(monkeypatch):
    messages = []
    monkeypatch.setattr(cache_service, "publish", lambda channel, message: messages.append((channel, message)))
    return messages


def test_manager_drops_stale_sockets():
    manager = realtime.ConnectionManager()
    good, bad = FakeSocket(), FakeSocket(broken=True)

    async def scenario():
        await manager.connect(good, "c1")
        await manager.connect(bad, "c1")
        await manager.broadcast("c1", {"event": "ping"})

    asyncio.run(scenario())
    assert good.accepted is True
    assert good.sent == [{"event": "ping"}]
    assert manager.active_connections["c1"] == [good]

    manager.disconnect(good, "c1")
    assert "c1" not in manager.active_connections


def test_broadcast_publishes_envelope_without_loop(published):
    broadcaster = realtime.RealtimeBroadcaster(realtime.ConnectionManager())
    broadcaster.broadcast("c1", realtime.MESSAGE_NEW, {"id": "m1"})

    channel, raw = published[0]
    envelope = json.loads(raw)
    assert channel == "channel:c1"
    assert envelope["event"] == "message:new"
    assert envelope["channel_id"] == "c1"
    assert envelope["data"] == {"id": "m1"}
    assert "timestamp" in envelope


def test_broadcast_delivers_to_local_sockets(published):
    manager = realtime.ConnectionManager()
    broadcaster = realtime.RealtimeBroadcaster(manager)
    socket = FakeSocket()

    async def scenario():
        broadcaster.attach_loop(asyncio.get_running_loop())
        await manager.connect(socket, "c1")
        broadcaster.broadcast("c1", realtime.MESSAGE_DELETED, {"id": "m1"})
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert [m["event"] for m in socket.sent] == ["message:deleted"]
    assert socket.sent[0]["data"] == {"id": "m1"}


def access_token(user) -> str:
    return auth_headers(user)["Authorization"].split(" ", 1)[1]


@pytest.fixture
def socket_db(monkeypatch, session_factory):
    monkeypatch.setattr(main_module, "SessionLocal", session_factory)


class TestChannelSocket:
    def test_rejects_invalid_token(self, client, socket_db, make_channel):
        channel = make_channel()
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/channels/{channel.id}?token=not-a-token"):
                pass
        assert exc.value.code == 1008

    def test_rejects_reader_without_access(self, client, socket_db, member, make_channel):
        channel = make_channel("staff", visibility=ChannelVisibility.private, allowed_roles=("admin",))
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/channels/{channel.id}?token={access_token(member)}"):
                pass
        assert exc.value.code == 1008

    def test_member_joins_pings_and_leaves(self, client, socket_db, member, make_channel):
        channel = make_channel()
        with client.websocket_connect(f"/ws/channels/{channel.id}?token={access_token(member)}") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"
            assert len(realtime.ws_manager.active_connections[channel.id]) == 1
        assert channel.id not in realtime.ws_manager.active_connections

    def test_session_is_closed_before_the_socket_opens(self, socket_db, member, make_channel, monkeypatch, session_factory):
        channel = make_channel()
        sessions = []

        def tracking_factory():
            session = session_factory()
            sessions.append(session)
            return session

        monkeypatch.setattr(main_module, "SessionLocal", tracking_factory)
        user = main_module.authorize_socket(access_token(member), channel.id)

        assert user.username == "alice"
        assert user.roles == ["member"]
        assert len(sessions) == 1
        assert user not in sessions[0]
