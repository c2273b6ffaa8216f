"""Chatwoot Python client for customer-support chat widgets.

Usage::

    from chatwoot_client import ChatwootCallbacks, ChatwootClient

    callbacks = ChatwootCallbacks(
        on_message_received=lambda message: print(message.content),
        on_error=lambda error: print("error:", error.cause, error.data),
    )
    client = await ChatwootClient.create(
        "https://app.chatwoot.com",
        "your-inbox-identifier",
        callbacks=callbacks,
    )
    await client.load_messages()
    echo_id = await client.send_message("Hi there")
    ...
    await client.dispose()

Lower-level building blocks (:class:`ChatwootRepository`,
:class:`ChatwootClientService`, :class:`LocalStorage`) are exported for
hosts that manage their own setup.
"""

from ._version import __version__
from .callbacks import ChatwootCallbacks
from .client import ChatwootClient
from .config import ChatwootClientConfig
from .connection import ChatwootWebSocketConnection, ConnectionState, FrameSubscription
from .errors import ChatwootClientException, ChatwootClientExceptionType, ChatwootError
from .events import ChatwootEvent, ChatwootEventType, decode_event
from .repository import ChatwootRepository
from .service import ChatwootClientService
from .storage import LocalStorage, MemoryRecordStore, SQLiteRecordStore
from .types import (
    ChatwootActionType,
    ChatwootContact,
    ChatwootConversation,
    ChatwootMessage,
    ChatwootNewMessageRequest,
    ChatwootUser,
)

__all__ = [
    "__version__",
    "ChatwootClient",
    "ChatwootClientConfig",
    "ChatwootCallbacks",
    "ChatwootRepository",
    "ChatwootClientService",
    "ChatwootWebSocketConnection",
    "ConnectionState",
    "FrameSubscription",
    "LocalStorage",
    "MemoryRecordStore",
    "SQLiteRecordStore",
    "ChatwootEvent",
    "ChatwootEventType",
    "decode_event",
    "ChatwootActionType",
    "ChatwootContact",
    "ChatwootConversation",
    "ChatwootMessage",
    "ChatwootNewMessageRequest",
    "ChatwootUser",
    "ChatwootError",
    "ChatwootClientException",
    "ChatwootClientExceptionType",
]
