"""Client side of the realtime channel.

One ``RealtimeSession`` per logged-in identity. It keeps a single WebSocket
open, re-joins the identity's room after every connect and merges pushed
events into a ``ConversationState``. The channel only speeds things up:
sends and fetches always go through the HTTP API and keep working while the
session is reconnecting or offline.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from collab_messaging.client.api import MessagingApiClient
from collab_messaging.client.state import ConversationState
from collab_messaging.services.channel_session import ERROR, JOIN, JOINED, MARK_AS_READ, MESSAGE_READ, NEW_MESSAGE, SEND_MESSAGE
from collab_messaging.utils.errors import MessagingError


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    JOINED = "joined"
    RECONNECTING = "reconnecting"
    OFFLINE = "offline"
    CLOSED = "closed"


@dataclass
class RetryPolicy:
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 5.0
    connect_timeout: float = 20.0

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * (2 ** max(attempt - 1, 0)), self.max_delay)


class RealtimeSession:

    def __init__(
        self,
        url: str,
        user_id: str,
        token: str,
        api: MessagingApiClient,
        conversations: Optional[ConversationState] = None,
        retry: Optional[RetryPolicy] = None,
        connector: Callable[[str], Awaitable[Any]] = websockets.connect,
        on_offline: Optional[Callable[[], None]] = None,
        on_event: Optional[Callable[[str, Dict[str, Any]], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.user_id = user_id
        self._token = token
        self.api = api
        self.conversations = conversations or ConversationState(user_id)
        self.retry = retry or RetryPolicy()
        self._connector = connector
        self._on_offline = on_offline
        self._on_event = on_event
        self._sleep = sleep

        self.state = SessionState.IDLE
        self.failed_attempts = 0
        self.last_error: Optional[str] = None
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._has_joined = False
        self._stopping = False

    @property
    def offline(self) -> bool:
        return self.state is SessionState.OFFLINE

    def _connect_url(self) -> str:
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode({'token': self._token})}"

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping = False
            self._task = asyncio.create_task(self.run())
        return self._task

    async def reconnect(self) -> asyncio.Task:
        """Manual retry from the offline state; starts a fresh retry budget."""
        self.failed_attempts = 0
        return self.start()

    async def stop(self) -> None:
        self._stopping = True
        if self._ws is not None:
            await self._ws.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Realtime session for %s cancelled", self.user_id)
        self.state = SessionState.CLOSED

    async def run(self) -> None:
        while not self._stopping:
            self.state = SessionState.RECONNECTING if (self._has_joined or self.failed_attempts) else SessionState.CONNECTING
            try:
                ws = await asyncio.wait_for(self._connector(self._connect_url()), timeout=self.retry.connect_timeout)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                if not await self._record_failure(f"connect failed: {exc!r}"):
                    return
                continue

            try:
                await self._on_connected(ws)
                async for raw in ws:
                    await self._dispatch_safely(raw)
            except (WebSocketException, OSError) as exc:
                logger.info("Realtime connection for %s closed: %s", self.user_id, exc)
            finally:
                self._ws = None

            if self._stopping:
                break
            # server-initiated closes are retried like any other drop
            if not await self._record_failure("connection dropped"):
                return

    async def _record_failure(self, reason: str) -> bool:
        self.failed_attempts += 1
        self.state = SessionState.RECONNECTING
        if self.failed_attempts >= self.retry.max_attempts:
            self.state = SessionState.OFFLINE
            self.last_error = reason
            logger.warning("Realtime channel offline for %s after %d attempts (%s)", self.user_id, self.failed_attempts, reason)
            if self._on_offline is not None:
                self._on_offline()
            return False
        delay = self.retry.delay_for(self.failed_attempts)
        logger.info("Realtime attempt %d for %s failed (%s); retrying in %.1fs", self.failed_attempts, self.user_id, reason, delay)
        await self._sleep(delay)
        return True

    async def _on_connected(self, ws: Any) -> None:
        # JOINED only once the server acknowledges the join
        self._ws = ws
        await ws.send(json.dumps({"event": JOIN, "data": {"user_id": self.user_id, "token": self._token}}))

    async def _on_joined(self, data: Any) -> bool:
        if not isinstance(data, dict) or data.get("user_id") != self.user_id:
            return False
        rejoin = self._has_joined
        self.state = SessionState.JOINED
        self.failed_attempts = 0
        self._has_joined = True
        logger.info("Realtime session joined room %s", self.user_id)
        if rejoin:
            await self.resync()
        return True

    async def resync(self) -> None:
        """Events missed while disconnected are not replayed; refresh unread counts instead."""
        try:
            conversations = await self.api.list_conversations()
        except MessagingError as exc:
            logger.warning("Could not resync conversations for %s: %s", self.user_id, exc.message)
            return
        self.conversations.reconcile(conversations)

    async def _dispatch_safely(self, raw: Any) -> None:
        try:
            await self.dispatch(raw)
        except Exception:
            logger.exception("Dropped realtime frame for %s", self.user_id)

    async def dispatch(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed frame")
            return
        if not isinstance(frame, dict):
            return
        event, data = frame.get("event"), frame.get("data")
        if event == NEW_MESSAGE:
            applied = self.conversations.apply_new_message(data)
        elif event == MESSAGE_READ:
            applied = self.conversations.apply_message_read(data)
        elif event == JOINED:
            applied = await self._on_joined(data)
        elif event == ERROR:
            self.last_error = data.get("message") if isinstance(data, dict) else None
            logger.warning("Realtime error for %s: %s", self.user_id, self.last_error)
            applied = True
        else:
            applied = False
        if applied and self._on_event is not None:
            self._on_event(event, data)

    async def _emit(self, event: str, data: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None or self.state is not SessionState.JOINED:
            return False
        try:
            await ws.send(json.dumps({"event": event, "data": data}))
            return True
        except (ConnectionClosed, OSError) as exc:
            logger.info("Could not emit %s: %s", event, exc)
            return False

    async def send_message(self, recipient_id: str, text: str) -> Dict[str, Any]:
        message = await self.api.send_message(recipient_id, text)
        self.conversations.append_outgoing(message)
        await self._emit(SEND_MESSAGE, {"recipient_id": recipient_id, "message": message})
        return message

    async def open_conversation(self, partner_id: str) -> List[Dict[str, Any]]:
        history = await self.api.get_conversation(partner_id)
        self.conversations.load_history(partner_id, history)
        await self._emit(MARK_AS_READ, {"sender_id": partner_id})
        return history
