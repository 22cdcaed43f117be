import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, Set

from fastapi.encoders import jsonable_encoder
from fastapi import WebSocketDisconnect


logger = logging.getLogger(__name__)


class EventSink(Protocol):

    async def send_json(self, data: Any) -> None: ...


def frame(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": jsonable_encoder(data)}


async def send_event(sink: EventSink, event: str, data: Dict[str, Any]) -> bool:
    try:
        await sink.send_json(frame(event, data))
        return True
    except (WebSocketDisconnect, RuntimeError, OSError) as exc:
        logger.info("Dropping %s event for closed connection: %s", event, exc)
        return False


class RoomMembership:
    """Handed out by the hub on join; the only way a connection is addressed by room."""

    def __init__(self, hub: "RealtimeHub", connection_id: str, room: str) -> None:
        self._hub = hub
        self.connection_id = connection_id
        self.room = room

    @property
    def active(self) -> bool:
        return self._hub.membership_for(self.connection_id) is self

    def release(self) -> None:
        if self.active:
            self._hub.leave(self.connection_id)


class RealtimeHub:
    """Per-identity rooms over live WebSocket connections.

    A connection sits in at most one room. Events for a room with no members
    are dropped; the messages collection stays the source of truth.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, EventSink]] = {}
        self._memberships: Dict[str, RoomMembership] = {}
        self._pending: Set[asyncio.Task] = set()

    def join(self, connection_id: str, sink: EventSink, room: str) -> RoomMembership:
        if connection_id in self._memberships:
            self.leave(connection_id)
        self._rooms.setdefault(room, {})[connection_id] = sink
        membership = RoomMembership(self, connection_id, room)
        self._memberships[connection_id] = membership
        logger.info("Connection %s joined room %s", connection_id, room)
        return membership

    def leave(self, connection_id: str) -> None:
        membership = self._memberships.pop(connection_id, None)
        if membership is None:
            return
        members = self._rooms.get(membership.room)
        if members is not None:
            members.pop(connection_id, None)
            if not members:
                del self._rooms[membership.room]
        logger.info("Connection %s left room %s", connection_id, membership.room)

    def membership_for(self, connection_id: str) -> Optional[RoomMembership]:
        return self._memberships.get(connection_id)

    def member_count(self, room: str) -> int:
        return len(self._rooms.get(room, {}))

    async def emit(self, room: str, event: str, data: Dict[str, Any]) -> int:
        members = self._rooms.get(room)
        if not members:
            logger.debug("No members in room %s; dropped %s", room, event)
            return 0
        delivered = 0
        for connection_id, sink in list(members.items()):
            if await send_event(sink, event, data):
                delivered += 1
            else:
                self.leave(connection_id)
        return delivered

    def emit_soon(self, room: str, event: str, data: Dict[str, Any]) -> asyncio.Task:
        """Schedule ``emit`` without waiting on the room's sockets."""
        task = asyncio.create_task(self.emit(room, event, data))
        self._pending.add(task)
        task.add_done_callback(self._push_finished)
        return task

    def _push_finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background push failed: %r", exc)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
