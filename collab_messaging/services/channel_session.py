import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from collab_messaging.utils.errors import AuthError
from collab_messaging.utils.websocket_manager import EventSink, RealtimeHub, RoomMembership, send_event


logger = logging.getLogger(__name__)

JOIN = "join"
SEND_MESSAGE = "sendMessage"
MARK_AS_READ = "markAsRead"
NEW_MESSAGE = "newMessage"
MESSAGE_READ = "messageRead"
ERROR = "error"
JOINED = "joined"

# token -> identity id; raises AuthError
Authenticator = Callable[[str], Awaitable[str]]


class ChannelState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


class ChannelSession:
    """Protocol state for one realtime connection.

    ``handle`` returns False when the connection has to be closed, which
    only happens after a failed credential check.
    """

    def __init__(
        self,
        hub: RealtimeHub,
        sink: EventSink,
        authenticate: Authenticator,
        handshake_token: Optional[str] = None,
        connection_id: Optional[str] = None,
    ) -> None:
        self._hub = hub
        self._sink = sink
        self._authenticate = authenticate
        self._handshake_token = handshake_token
        self.connection_id = connection_id or uuid.uuid4().hex
        self.state = ChannelState.CONNECTED
        self.user_id: Optional[str] = None
        self._membership: Optional[RoomMembership] = None

    @property
    def authenticated(self) -> bool:
        return (
            self.state is ChannelState.AUTHENTICATED
            and self._membership is not None
            and self._membership.active
        )

    async def error(self, message: str) -> None:
        await send_event(self._sink, ERROR, {"message": message})

    async def handle(self, event: Any, data: Any) -> bool:
        if self.state is ChannelState.DISCONNECTED:
            return False
        if event == JOIN:
            return await self._on_join(data)
        if event not in (SEND_MESSAGE, MARK_AS_READ):
            await self.error(f"Unknown event: {event}")
            return True
        if not self.authenticated:
            logger.debug("Ignoring %s from unauthenticated connection %s", event, self.connection_id)
            return True
        if event == SEND_MESSAGE:
            await self._on_send_message(data)
        else:
            await self._on_mark_as_read(data)
        return True

    async def _on_join(self, data: Any) -> bool:
        if isinstance(data, dict):
            requested = data.get("user_id")
            token = data.get("token") or self._handshake_token
        else:
            requested, token = data, self._handshake_token
        if not requested:
            await self.error("Invalid user ID")
            return True

        try:
            identity = await self._authenticate(token or "")
        except AuthError as exc:
            logger.info("Rejected join on connection %s: bad credential", self.connection_id)
            await self.error(exc.message)
            self.close()
            return False

        if str(requested) != identity:
            logger.warning("Connection %s (%s) tried to join room %s", self.connection_id, identity, requested)
            await self.error("Cannot join another user's room")
            return True

        self.user_id = identity
        self._membership = self._hub.join(self.connection_id, self._sink, identity)
        self.state = ChannelState.AUTHENTICATED
        await send_event(self._sink, JOINED, {"user_id": identity})
        return True

    async def _on_send_message(self, data: Any) -> None:
        recipient_id = data.get("recipient_id") if isinstance(data, dict) else None
        message = data.get("message") if isinstance(data, dict) else None
        if not recipient_id or not isinstance(message, dict) or not message.get("id"):
            await self.error("Invalid message data")
            return
        if message.get("sender_id") != self.user_id:
            await self.error("Cannot relay a message sent by another user")
            return
        sender: Dict[str, Any] = message.get("sender") or {"id": self.user_id}
        delivered = await self._hub.emit(str(recipient_id), NEW_MESSAGE, {"message": message, "sender": sender})
        logger.debug("Relayed message %s to %s (%d connections)", message["id"], recipient_id, delivered)

    async def _on_mark_as_read(self, data: Any) -> None:
        sender_id = data.get("sender_id") if isinstance(data, dict) else None
        if not sender_id:
            return
        await self._hub.emit(
            str(sender_id),
            MESSAGE_READ,
            {"sender_id": str(sender_id), "read_by": self.user_id, "timestamp": datetime.now(timezone.utc)},
        )

    def close(self) -> None:
        if self._membership is not None:
            self._membership.release()
            self._membership = None
        self.state = ChannelState.DISCONNECTED
