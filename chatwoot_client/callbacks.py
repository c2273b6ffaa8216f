# =============================================================================
# Chatwoot Python Client -- Callbacks
# =============================================================================
#
# Observer functions the repository calls as results and realtime events
# arrive.  Every handler is optional; a missing handler is a no-op.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from .errors import ChatwootClientException
    from .types import ChatwootMessage

# Handlers may be plain functions or coroutine functions.
Handler = Callable[..., Any]


@dataclass
class ChatwootCallbacks:
    """Optional UI handlers.

    Attributes:
        on_error: ``(ChatwootClientException)``; backend call failed.
        on_welcome: ``()``; realtime server greeted the client.
        on_ping: ``()``; realtime keep-alive arrived.
        on_confirmed_subscription: ``()``; channel subscription confirmed.
        on_messages_retrieved: ``(list[ChatwootMessage])``; fetched from backend.
        on_persisted_messages_retrieved: ``(list[ChatwootMessage])``; read from cache.
        on_message_sent: ``(ChatwootMessage, echo_id)``; create call succeeded.
        on_message_delivered: ``(ChatwootMessage, echo_id)``; own message
            echoed back by the realtime channel.
        on_message_received: ``(ChatwootMessage)``; message from an agent.
        on_conversation_started_typing: ``()``
        on_conversation_stopped_typing: ``()``
        on_conversation_is_online: ``()``
        on_conversation_is_offline: ``()``
    """

    on_error: Callable[[ChatwootClientException], Any] | None = None
    on_welcome: Handler | None = None
    on_ping: Handler | None = None
    on_confirmed_subscription: Handler | None = None
    on_messages_retrieved: Callable[[list[ChatwootMessage]], Any] | None = None
    on_persisted_messages_retrieved: Callable[[list[ChatwootMessage]], Any] | None = None
    on_message_sent: Callable[[ChatwootMessage, str], Any] | None = None
    on_message_delivered: Callable[[ChatwootMessage, str | None], Any] | None = None
    on_message_received: Callable[[ChatwootMessage], Any] | None = None
    on_conversation_started_typing: Handler | None = None
    on_conversation_stopped_typing: Handler | None = None
    on_conversation_is_online: Handler | None = None
    on_conversation_is_offline: Handler | None = None
