# =============================================================================
# Chatwoot Python Client -- Type Definitions
# =============================================================================
#
# Records use the Chatwoot public API field names on the wire.  The same
# dict shape is what the local cache persists.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from .constants import MESSAGE_TYPE_NAMES, MESSAGE_TYPE_OUTGOING


class ChatwootActionType(str, Enum):
    """Actions a contact can broadcast over the realtime channel."""

    TYPING_ON = "typing_on"
    TYPING_OFF = "typing_off"
    UPDATE_PRESENCE = "update_presence"


@dataclass(frozen=True, slots=True)
class ChatwootUser:
    """Local identity of the person using the widget.

    Attributes:
        identifier: Stable id from the host application.
        identifier_hash: HMAC of *identifier* for identity validation.
        name: Display name.
        email: Contact email.
        avatar_url: Avatar image URL.
        custom_attributes: Free-form metadata forwarded to Chatwoot.
    """

    identifier: str | None = None
    identifier_hash: str | None = None
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    custom_attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatwootUser:
        return cls(
            identifier=data.get("identifier"),
            identifier_hash=data.get("identifier_hash"),
            name=data.get("name"),
            email=data.get("email"),
            avatar_url=data.get("avatar_url"),
            custom_attributes=dict(data.get("custom_attributes") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "identifier_hash": self.identifier_hash,
            "name": self.name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "custom_attributes": dict(self.custom_attributes),
        }


@dataclass(frozen=True, slots=True)
class ChatwootContact:
    """Server-side identity of the widget user.

    ``pubsub_token`` authorizes the realtime channel; ``contact_identifier``
    (``source_id`` on the wire) addresses the contact in REST paths.
    """

    id: int
    contact_identifier: str | None = None
    pubsub_token: str | None = None
    name: str | None = None
    email: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatwootContact:
        return cls(
            id=int(data["id"]),
            contact_identifier=data.get("source_id"),
            pubsub_token=data.get("pubsub_token"),
            name=data.get("name"),
            email=data.get("email"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.contact_identifier,
            "pubsub_token": self.pubsub_token,
            "name": self.name,
            "email": self.email,
        }


@dataclass(frozen=True, slots=True)
class ChatwootMessage:
    """A single chat message.

    Attributes:
        id: Server-assigned message id.
        content: Message text.
        message_type: 0 incoming (from the contact), 1 outgoing (from an
            agent), 2 activity, 3 template.
        content_type: e.g. ``"text"``, ``"input_select"``.
        content_attributes: Content-type specific attributes.
        created_at: Unix timestamp or ISO-8601 string, as sent by the server.
        conversation_id: Owning conversation.
        attachments: Attachment descriptors.
        sender: Sender descriptor (agent or contact).
        echo_id: Client-generated id correlating an optimistic send.
    """

    id: int
    content: str | None = None
    message_type: int = 0
    content_type: str | None = None
    content_attributes: dict[str, Any] = field(default_factory=dict)
    created_at: int | str | None = None
    conversation_id: int | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    sender: dict[str, Any] | None = None
    echo_id: str | None = None

    @property
    def is_mine(self) -> bool:
        """True unless an agent sent the message."""
        return self.message_type != MESSAGE_TYPE_OUTGOING

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatwootMessage:
        conversation_id = data.get("conversation_id")
        return cls(
            id=int(data["id"]),
            content=data.get("content"),
            message_type=_message_type(data.get("message_type")),
            content_type=data.get("content_type"),
            content_attributes=dict(data.get("content_attributes") or {}),
            created_at=data.get("created_at"),
            conversation_id=int(conversation_id) if conversation_id is not None else None,
            attachments=list(data.get("attachments") or []),
            sender=data.get("sender"),
            echo_id=data.get("echo_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "message_type": self.message_type,
            "content_type": self.content_type,
            "content_attributes": dict(self.content_attributes),
            "created_at": self.created_at,
            "conversation_id": self.conversation_id,
            "attachments": list(self.attachments),
            "sender": self.sender,
            "echo_id": self.echo_id,
        }


@dataclass(frozen=True, slots=True)
class ChatwootConversation:
    """The contact's conversation with the inbox."""

    id: int
    inbox_id: int | None = None
    status: str | None = None
    messages: list[ChatwootMessage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatwootConversation:
        inbox_id = data.get("inbox_id")
        return cls(
            id=int(data["id"]),
            inbox_id=int(inbox_id) if inbox_id is not None else None,
            status=data.get("status"),
            messages=[ChatwootMessage.from_dict(m) for m in data.get("messages") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "inbox_id": self.inbox_id,
            "status": self.status,
            "messages": [m.to_dict() for m in self.messages],
        }


@dataclass(frozen=True, slots=True)
class ChatwootNewMessageRequest:
    """Outgoing message.  ``echo_id`` lets the UI match the server's copy."""

    content: str
    echo_id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "echo_id": self.echo_id}


def _message_type(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str) and not value.isdigit():
        try:
            return MESSAGE_TYPE_NAMES[value]
        except KeyError:
            raise ValueError(f"Unknown message_type: {value!r}") from None
    return int(value)
