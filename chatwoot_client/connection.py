# =============================================================================
# Chatwoot Python Client -- Realtime Connection
# =============================================================================
#
# ActionCable WebSocket: open, subscribe to RoomChannel with the contact's
# pubsub token, then fan every inbound text frame out to the registered
# subscriptions.  Reconnection is left to the caller.
# =============================================================================

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

import orjson
import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from ._logging import logger
from .constants import (
    ACTION_TOGGLE_TYPING,
    ACTION_UPDATE_PRESENCE,
    CABLE_CHANNEL,
    COMMAND_MESSAGE,
    COMMAND_SUBSCRIBE,
    CONNECTION_TIMEOUT,
    MAX_MESSAGE_SIZE,
    WS_CLOSE_NORMAL,
)
from .errors import ChatwootClientException, ChatwootClientExceptionType
from .types import ChatwootActionType

FrameHandler = Callable[[str], Any]


class ConnectionState(str, Enum):
    """Lifecycle of a realtime connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    ERROR = "error"


class FrameSubscription:
    """Handle returned by :meth:`ChatwootWebSocketConnection.listen`."""

    def __init__(self, connection: ChatwootWebSocketConnection, handler: FrameHandler) -> None:
        self._connection = connection
        self._handler = handler
        self._active = True

    @property
    def connection(self) -> ChatwootWebSocketConnection:
        return self._connection

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivery.  Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._connection._remove(self)

    def _deliver(self, frame: str) -> None:
        if not self._active:
            return
        try:
            self._handler(frame)
        except Exception:
            logger.exception("Frame handler failed")


class ChatwootWebSocketConnection:
    """One ActionCable connection for one pubsub token.

    Args:
        url: Cable endpoint, e.g. ``"wss://app.chatwoot.com/cable"``.
        pubsub_token: Contact token authorizing the RoomChannel stream.
        open_timeout: Seconds to wait for the WebSocket handshake.
        extra_headers: Additional HTTP headers for the handshake.
    """

    def __init__(
        self,
        url: str,
        pubsub_token: str,
        *,
        open_timeout: float = CONNECTION_TIMEOUT,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self._url = url
        self._pubsub_token = pubsub_token
        self._open_timeout = open_timeout
        self._extra_headers = extra_headers or {}

        self._ws_cm: Any | None = None  # websocket context manager
        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._opened = asyncio.Event()
        self._subscriptions: list[FrameSubscription] = []

        self._recv_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -- Properties -----------------------------------------------------------

    @property
    def pubsub_token(self) -> str:
        return self._pubsub_token

    @property
    def identifier(self) -> str:
        """ActionCable channel identifier (a JSON string)."""
        return orjson.dumps(
            {"channel": CABLE_CHANNEL, "pubsub_token": self._pubsub_token}
        ).decode()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._state == ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self._state in (ConnectionState.CLOSED, ConnectionState.ERROR)

    # -- Subscriptions --------------------------------------------------------

    def listen(self, handler: FrameHandler) -> FrameSubscription:
        """Register *handler* for every inbound text frame."""
        subscription = FrameSubscription(self, handler)
        self._subscriptions.append(subscription)
        return subscription

    def has_listener(self) -> bool:
        return any(s.active for s in self._subscriptions)

    def _remove(self, subscription: FrameSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _dispatch(self, frame: str) -> None:
        for subscription in list(self._subscriptions):
            subscription._deliver(frame)

    # -- Connect / Close ------------------------------------------------------

    def start(self) -> None:
        """Open the connection in the background."""
        self._fire_task(self._start())

    async def _start(self) -> None:
        try:
            await self.connect()
        except ChatwootClientException as exc:
            logger.error("Realtime connection failed: %s", exc)

    async def connect(self) -> None:
        """Open the WebSocket and subscribe to the RoomChannel."""
        if self.is_connected or self._state == ConnectionState.CONNECTING:
            return
        self._state = ConnectionState.CONNECTING

        try:
            self._ws_cm = websockets.asyncio.client.connect(
                self._url,
                additional_headers=self._extra_headers,
                max_size=MAX_MESSAGE_SIZE,
                open_timeout=None,  # asyncio.wait_for handles timeout
            )
            self._ws = await asyncio.wait_for(
                self._ws_cm.__aenter__(),
                timeout=self._open_timeout,
            )
        except asyncio.TimeoutError as exc:
            await self._discard_cm()
            self._state = ConnectionState.ERROR
            raise ChatwootClientException(
                f"Connection timed out after {self._open_timeout}s",
                ChatwootClientExceptionType.NETWORK_FAILURE,
            ) from exc
        except Exception as exc:
            await self._discard_cm()
            self._state = ConnectionState.ERROR
            raise ChatwootClientException(
                f"Failed to connect: {exc}",
                ChatwootClientExceptionType.NETWORK_FAILURE,
            ) from exc

        self._state = ConnectionState.CONNECTED
        logger.debug("Realtime connection open: %s", self._url)
        self._recv_task = asyncio.create_task(self._recv_loop())
        await self.send(
            orjson.dumps({"command": COMMAND_SUBSCRIBE, "identifier": self.identifier}).decode()
        )
        self._opened.set()

    async def close(self) -> None:
        """Close the socket and drop every subscription."""
        self._state = ConnectionState.CLOSED
        self._opened.clear()
        for subscription in list(self._subscriptions):
            subscription.cancel()

        tasks_to_await: list[asyncio.Task[Any]] = []
        if self._recv_task:
            self._recv_task.cancel()
            tasks_to_await.append(self._recv_task)
            self._recv_task = None
        for task in self._background_tasks:
            task.cancel()
            tasks_to_await.append(task)
        self._background_tasks.clear()
        if tasks_to_await:
            await asyncio.gather(*tasks_to_await, return_exceptions=True)

        if self._ws_cm:
            await self._discard_cm()
        elif self._ws:
            try:
                await self._ws.close(WS_CLOSE_NORMAL, "Client disconnect")
            except ConnectionClosed:
                pass
        self._ws = None

    async def _discard_cm(self) -> None:
        ws_cm = self._ws_cm
        self._ws_cm = None
        if ws_cm is None:
            return
        try:
            await ws_cm.__aexit__(None, None, None)
        except Exception as exc:
            logger.debug("Error while closing WebSocket: %s", exc)

    # -- Send -----------------------------------------------------------------

    async def send(self, data: str) -> bool:
        """Send a text frame.  Returns True on success."""
        if not self._ws:
            return False
        try:
            await self._ws.send(data)
            return True
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
            return False

    def send_action(self, action: ChatwootActionType) -> None:
        """Broadcast a typing/presence action once the channel is open."""
        self._fire_task(self._send_action(action))

    async def _send_action(self, action: ChatwootActionType) -> None:
        if self.is_closed:
            logger.warning("Dropping action %s: connection closed", action.value)
            return
        try:
            await asyncio.wait_for(self._opened.wait(), timeout=self._open_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping action %s: channel not open", action.value)
            return
        ok = await self.send(self.encode_action(action))
        if not ok:
            logger.warning("Could not send action %s", action.value)

    def encode_action(self, action: ChatwootActionType) -> str:
        if action == ChatwootActionType.UPDATE_PRESENCE:
            data: dict[str, Any] = {"action": ACTION_UPDATE_PRESENCE}
        else:
            status = "on" if action == ChatwootActionType.TYPING_ON else "off"
            data = {"action": ACTION_TOGGLE_TYPING, "typing_status": status}
        return orjson.dumps(
            {
                "command": COMMAND_MESSAGE,
                "identifier": self.identifier,
                "data": orjson.dumps(data).decode(),
            }
        ).decode()

    # -- Internal: receive loop -----------------------------------------------

    async def _recv_loop(self) -> None:
        """Read frames until the socket closes."""
        assert self._ws is not None
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._dispatch(message)
            logger.debug("Realtime connection closed normally")
            self._state = ConnectionState.CLOSED
        except ConnectionClosedOK:
            logger.debug("Realtime connection closed normally")
            self._state = ConnectionState.CLOSED
        except ConnectionClosedError as exc:
            code = exc.rcvd.code if exc.rcvd else None
            logger.warning("Realtime connection lost (code=%s)", code)
            self._state = ConnectionState.ERROR
        except asyncio.CancelledError:
            return
        self._ws = None
        self._opened.clear()
