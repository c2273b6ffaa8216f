# =============================================================================
# Chatwoot Python Client -- Realtime Event Decoder
# =============================================================================
#
# ActionCable frames seen on the Chatwoot realtime channel:
#
#   {"type": "welcome"}
#   {"type": "ping", "message": 1700000000}
#   {"identifier": "...", "type": "confirm_subscription"}
#   {"identifier": "...", "message": {"event": "message.created", "data": {...}}}
#
# Top-level ``type`` is checked first, then the nested ``message.event``.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

import orjson

from ._logging import logger
from .constants import (
    MAX_MESSAGE_SIZE,
    PRESENCE_ONLINE,
    TYPE_CONFIRM_SUBSCRIPTION,
    TYPE_PING,
    TYPE_WELCOME,
)
from .types import ChatwootMessage


class ChatwootEventType(str, Enum):
    """Classification of a decoded realtime frame."""

    WELCOME = "welcome"
    PING = "ping"
    CONFIRM_SUBSCRIPTION = "confirm_subscription"
    MESSAGE_CREATED = "message_created"
    CONVERSATION_TYPING_ON = "conversation_typing_on"
    CONVERSATION_TYPING_OFF = "conversation_typing_off"
    PRESENCE_UPDATE = "presence_update"
    UNKNOWN = "unknown"
    MALFORMED = "malformed"


@dataclass(frozen=True, slots=True)
class WelcomeEvent:
    kind: ClassVar[ChatwootEventType] = ChatwootEventType.WELCOME
    ignorable: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class PingEvent:
    kind: ClassVar[ChatwootEventType] = ChatwootEventType.PING
    ignorable: ClassVar[bool] = False

    timestamp: int | None = None


@dataclass(frozen=True, slots=True)
class ConfirmedSubscriptionEvent:
    kind: ClassVar[ChatwootEventType] = ChatwootEventType.CONFIRM_SUBSCRIPTION
    ignorable: ClassVar[bool] = False

    identifier: str | None = None


@dataclass(frozen=True, slots=True)
class MessageCreatedEvent:
    """A message landed in the conversation (from either side)."""

    kind: ClassVar[ChatwootEventType] = ChatwootEventType.MESSAGE_CREATED
    ignorable: ClassVar[bool] = False

    message: ChatwootMessage
    echo_id: str | None = None


@dataclass(frozen=True, slots=True)
class TypingOnEvent:
    kind: ClassVar[ChatwootEventType] = ChatwootEventType.CONVERSATION_TYPING_ON
    ignorable: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class TypingOffEvent:
    kind: ClassVar[ChatwootEventType] = ChatwootEventType.CONVERSATION_TYPING_OFF
    ignorable: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class PresenceUpdateEvent:
    """Presence of the conversation's participants.

    ``users`` maps a participant id to a status string such as
    ``"online"``, ``"busy"`` or ``"offline"``.
    """

    kind: ClassVar[ChatwootEventType] = ChatwootEventType.PRESENCE_UPDATE
    ignorable: ClassVar[bool] = False

    users: dict[str, str] = field(default_factory=dict)

    @property
    def is_online(self) -> bool:
        """True when any participant is online."""
        return PRESENCE_ONLINE in self.users.values()


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """Well-formed frame of a type this client does not handle."""

    kind: ClassVar[ChatwootEventType] = ChatwootEventType.UNKNOWN
    ignorable: ClassVar[bool] = True

    name: str | None
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class MalformedEvent:
    """Frame that could not be decoded."""

    kind: ClassVar[ChatwootEventType] = ChatwootEventType.MALFORMED
    ignorable: ClassVar[bool] = True

    frame: str
    reason: str


ChatwootEvent = Union[
    WelcomeEvent,
    PingEvent,
    ConfirmedSubscriptionEvent,
    MessageCreatedEvent,
    TypingOnEvent,
    TypingOffEvent,
    PresenceUpdateEvent,
    UnknownEvent,
    MalformedEvent,
]


def decode_event(frame: str | bytes) -> ChatwootEvent:
    """Decode one realtime frame.  Never raises."""
    if isinstance(frame, bytes):
        size = len(frame)
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError:
            return MalformedEvent(repr(frame[:64]), "frame is not valid UTF-8")
    else:
        size = len(frame.encode("utf-8", errors="replace"))

    if size > MAX_MESSAGE_SIZE:
        return MalformedEvent(frame[:64], f"frame exceeds {MAX_MESSAGE_SIZE} bytes")

    try:
        parsed = orjson.loads(frame)
    except orjson.JSONDecodeError as exc:
        return MalformedEvent(frame, f"invalid JSON: {exc}")

    if not isinstance(parsed, dict):
        return MalformedEvent(frame, "frame is not a JSON object")

    top_type = parsed.get("type")
    if top_type == TYPE_WELCOME:
        return WelcomeEvent()
    if top_type == TYPE_PING:
        ts = parsed.get("message")
        return PingEvent(timestamp=ts if isinstance(ts, int) else None)
    if top_type == TYPE_CONFIRM_SUBSCRIPTION:
        return ConfirmedSubscriptionEvent(identifier=parsed.get("identifier"))

    message = parsed.get("message")
    if not isinstance(message, dict):
        return UnknownEvent(name=top_type, payload=parsed)

    name = _normalize_event_name(message.get("event"))
    data = message.get("data")
    try:
        if name == ChatwootEventType.MESSAGE_CREATED:
            if not isinstance(data, dict):
                raise TypeError("message data is not an object")
            return MessageCreatedEvent(
                message=ChatwootMessage.from_dict(data),
                echo_id=data.get("echo_id"),
            )
        if name == ChatwootEventType.CONVERSATION_TYPING_ON:
            return TypingOnEvent()
        if name == ChatwootEventType.CONVERSATION_TYPING_OFF:
            return TypingOffEvent()
        if name == ChatwootEventType.PRESENCE_UPDATE:
            users = data.get("users") if isinstance(data, dict) else None
            if not isinstance(users, dict):
                raise TypeError("presence data has no users mapping")
            return PresenceUpdateEvent(users={str(k): str(v) for k, v in users.items()})
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Bad %s payload: %s", name, exc)
        return MalformedEvent(frame, f"{name}: {exc}")

    return UnknownEvent(name=name, payload=parsed)


def _normalize_event_name(value: Any) -> str | None:
    # Chatwoot sends "message.created"; accept "message_created" too.
    if not isinstance(value, str):
        return None
    return value.replace(".", "_")
