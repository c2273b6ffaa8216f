"""Shared fixtures for chatwoot_client tests."""

import json
from dataclasses import fields
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatwoot_client.callbacks import ChatwootCallbacks
from chatwoot_client.connection import ChatwootWebSocketConnection
from chatwoot_client.storage import LocalStorage, MemoryRecordStore
from chatwoot_client.types import ChatwootContact, ChatwootConversation, ChatwootMessage

PUBSUB_TOKEN = "pubsub-token-1"
CONVERSATION_ID = 7

CONTACT = ChatwootContact(
    id=1,
    contact_identifier="source-abc",
    pubsub_token=PUBSUB_TOKEN,
    name="Ada",
    email="ada@example.com",
)
CONVERSATION = ChatwootConversation(id=CONVERSATION_ID, inbox_id=3, status="open")


def make_message(
    id: int = 100,
    content: str = "hello",
    message_type: int = 0,
    echo_id: str | None = None,
    conversation_id: int = CONVERSATION_ID,
) -> ChatwootMessage:
    return ChatwootMessage(
        id=id,
        content=content,
        message_type=message_type,
        content_type="text",
        created_at=1_700_000_000 + id,
        conversation_id=conversation_id,
        echo_id=echo_id,
    )


def message_frame(event: str, data: dict) -> str:
    identifier = json.dumps({"channel": "RoomChannel", "pubsub_token": PUBSUB_TOKEN})
    return json.dumps({"identifier": identifier, "message": {"event": event, "data": data}})


def recording_callbacks() -> ChatwootCallbacks:
    """Callbacks where every handler is a MagicMock."""
    return ChatwootCallbacks(**{f.name: MagicMock(name=f.name) for f in fields(ChatwootCallbacks)})


@pytest.fixture
def storage():
    s = LocalStorage(MemoryRecordStore(), "inbox-1:anonymous")
    s.contact_dao.save_contact(CONTACT)
    s.conversation_dao.save_conversation(CONVERSATION)
    return s


@pytest.fixture
def service():
    """Client service double whose realtime connection is real but never opened."""
    svc = MagicMock()
    svc.connection = None

    def start(token):
        current = svc.connection
        if current is None or current.pubsub_token != token or current.is_closed:
            svc.connection = ChatwootWebSocketConnection("ws://localhost/cable", token)

    svc.start_websocket_connection.side_effect = start
    svc.get_contact = AsyncMock(return_value=CONTACT)
    svc.get_conversations = AsyncMock(return_value=[CONVERSATION])
    svc.get_all_messages = AsyncMock(return_value=[])
    svc.create_message = AsyncMock()
    return svc


@pytest.fixture
def callbacks():
    return recording_callbacks()
