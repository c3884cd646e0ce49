"""Realtime fan-out — WebSocket rooms per channel plus Redis pub/sub."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from teamchat.services.cache_service import cache_service

logger = logging.getLogger(__name__)

MESSAGE_NEW = "message:new"
THREAD_MESSAGE = "thread:message"
MESSAGE_UPDATED = "message:updated"
MESSAGE_DELETED = "message:deleted"
REACTION_UPDATED = "reaction:updated"


class ConnectionManager:
    """WebSocket connections grouped by channel id."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)

    def disconnect(self, websocket: WebSocket, channel: str):
        if channel in self.active_connections:
            self.active_connections[channel] = [
                ws for ws in self.active_connections[channel] if ws != websocket
            ]
            if not self.active_connections[channel]:
                del self.active_connections[channel]

    async def broadcast(self, channel: str, message: dict):
        stale = []
        for ws in list(self.active_connections.get(channel, [])):
            try:
                await ws.send_json(message)
            except (RuntimeError, ConnectionError) as e:
                logger.debug("Dropping websocket on %s: %s", channel, e)
                stale.append(ws)
        for ws in stale:
            self.disconnect(ws, channel)


class RealtimeBroadcaster:
    """Publishes channel events to Redis and to sockets connected to this process.

    Services call ``broadcast`` from sync code, on the event loop thread or in
    a worker thread; local delivery is scheduled onto the application event
    loop registered with ``attach_loop``.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def broadcast(self, channel_id: str, event: str, payload: Any) -> None:
        message = {
            "event": event,
            "channel_id": channel_id,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            cache_service.publish(f"channel:{channel_id}", json.dumps(message, default=str))
        except (TypeError, ValueError):
            logger.exception("Could not serialize %s event for channel %s", event, channel_id)
            return

        if self._loop is None or self._loop.is_closed():
            return
        # jsonable copy for send_json
        local = json.loads(json.dumps(message, default=str))
        try:
            asyncio.run_coroutine_threadsafe(self.manager.broadcast(channel_id, local), self._loop)
        except RuntimeError:
            logger.warning("Event loop unavailable; %s not delivered locally", event)


ws_manager = ConnectionManager()
broadcaster = RealtimeBroadcaster(ws_manager)
