# =============================================================================
# Chatwoot Python Client -- Repository
# =============================================================================
#
# Mediates between the client API service and local storage.  Results of
# every operation, and every realtime event, are reported through the
# callbacks; backend failures never propagate to the caller.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ._logging import logger
from .callbacks import ChatwootCallbacks
from .connection import FrameSubscription
from .errors import ChatwootClientException
from .events import (
    ChatwootEvent,
    ChatwootEventType,
    MessageCreatedEvent,
    PresenceUpdateEvent,
    decode_event,
)
from .service import ChatwootClientService
from .storage import LocalStorage
from .types import ChatwootActionType, ChatwootNewMessageRequest, ChatwootUser


class ChatwootRepository:
    """Keeps the local cache in step with the backend and the realtime stream.

    Args:
        client_service: REST + realtime access to the backend.
        local_storage: Cache for user, contact, conversation and messages.
        callbacks: Handlers notified of results and events. May be
            replaced at any time by assigning :attr:`callbacks`.
    """

    def __init__(
        self,
        client_service: ChatwootClientService,
        local_storage: LocalStorage,
        callbacks: ChatwootCallbacks | None = None,
    ) -> None:
        self.client_service = client_service
        self.local_storage = local_storage
        self.callbacks = callbacks or ChatwootCallbacks()

        self._subscriptions: list[FrameSubscription] = []
        self._is_listening_for_events = False
        self._disposed = False
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self._event_handlers: dict[ChatwootEventType, Callable[[Any], None]] = {
            ChatwootEventType.WELCOME: self._handle_welcome,
            ChatwootEventType.PING: self._handle_ping,
            ChatwootEventType.CONFIRM_SUBSCRIPTION: self._handle_confirm_subscription,
            ChatwootEventType.MESSAGE_CREATED: self._handle_message_created,
            ChatwootEventType.CONVERSATION_TYPING_OFF: self._handle_typing_off,
            ChatwootEventType.CONVERSATION_TYPING_ON: self._handle_typing_on,
            ChatwootEventType.PRESENCE_UPDATE: self._handle_presence_update,
        }

    @property
    def is_listening_for_events(self) -> bool:
        """True once the server confirmed the channel subscription."""
        return self._is_listening_for_events

    # -- Sync operations ------------------------------------------------------

    async def initialize(self, user: ChatwootUser | None = None) -> None:
        """Refresh contact and conversation, then start listening for events.

        Listening is attempted even when the refresh fails.
        """
        try:
            if user is not None:
                self.local_storage.user_dao.save_user(user)

            contact = await self.client_service.get_contact()
            if self._disposed:
                return
            self.local_storage.contact_dao.save_contact(contact)

            conversations = await self.client_service.get_conversations()
            if self._disposed:
                return
            persisted = self.local_storage.conversation_dao.get_conversation()
            if persisted is None:
                logger.warning("No cached conversation, skipping conversation refresh")
            else:
                refreshed = next((c for c in conversations if c.id == persisted.id), persisted)
                self.local_storage.conversation_dao.save_conversation(refreshed)
        except ChatwootClientException as exc:
            logger.warning("Initialize failed: %s", exc)
            self._notify(self.callbacks.on_error, exc)

        if not self._disposed:
            self.listen_for_events()

    def get_persisted_messages(self) -> None:
        """Report cached messages; silent when the cache is empty."""
        messages = self.local_storage.messages_dao.get_messages()
        if messages:
            self._notify(self.callbacks.on_persisted_messages_retrieved, messages)

    async def get_messages(self) -> None:
        """Fetch all messages and replace the cached set with them."""
        try:
            messages = await self.client_service.get_all_messages()
        except ChatwootClientException as exc:
            logger.warning("Fetching messages failed: %s", exc)
            self._notify(self.callbacks.on_error, exc)
            return
        if self._disposed:
            return
        self.local_storage.messages_dao.save_all_messages(messages)
        self._notify(self.callbacks.on_messages_retrieved, messages)

    async def send_message(self, request: ChatwootNewMessageRequest) -> None:
        """Create a message; failures are reported with ``request.echo_id`` attached."""
        try:
            created = await self.client_service.create_message(request)
        except ChatwootClientException as exc:
            logger.warning("Sending message %s failed: %s", request.echo_id, exc)
            self._notify(self.callbacks.on_error, exc.with_data(request.echo_id))
            return
        if self._disposed:
            return

        self.local_storage.messages_dao.save_message(created)
        self._notify(self.callbacks.on_message_sent, created, request.echo_id)
        connection = self.client_service.connection
        if connection is not None and (not self._is_listening_for_events or connection.is_closed):
            self.listen_for_events()

    def send_action(self, action: ChatwootActionType) -> None:
        """Broadcast a typing or presence action."""
        contact = self.local_storage.contact_dao.get_contact()
        if contact is None or contact.pubsub_token is None:
            logger.warning("No pubsub token cached, dropping action %s", action.value)
            return
        self.client_service.send_action(contact.pubsub_token, action)

    # -- Realtime -------------------------------------------------------------

    def listen_for_events(self) -> None:
        """Open the realtime channel and route its frames.

        No-op without a cached pubsub token.
        """
        contact = self.local_storage.contact_dao.get_contact()
        token = contact.pubsub_token if contact else None
        if token is None:
            return

        self.client_service.start_websocket_connection(token)
        connection = self.client_service.connection
        if connection is None:
            return

        if any(s.active and s.connection is connection for s in self._subscriptions):
            return
        for subscription in self._subscriptions:
            if subscription.connection is not connection:
                subscription.cancel()
        self._subscriptions = [s for s in self._subscriptions if s.active]
        self._is_listening_for_events = False
        self._subscriptions.append(connection.listen(self._on_frame))

    def _on_frame(self, frame: str) -> None:
        event = decode_event(frame)
        if event.kind == ChatwootEventType.MALFORMED:
            logger.warning("Ignoring undecodable frame (%s): %.200s", event.reason, frame)
            return
        if event.ignorable:
            logger.debug("Ignoring unknown event %s", event.name)
            return
        logger.debug("Realtime event: %s", event.kind.value)
        handler = self._event_handlers.get(event.kind)
        if handler is not None:
            handler(event)

    def _handle_welcome(self, event: ChatwootEvent) -> None:
        self._notify(self.callbacks.on_welcome)

    def _handle_ping(self, event: ChatwootEvent) -> None:
        self._notify(self.callbacks.on_ping)

    def _handle_confirm_subscription(self, event: ChatwootEvent) -> None:
        if not self._is_listening_for_events:
            self._is_listening_for_events = True
        self._notify(self.callbacks.on_confirmed_subscription)

    def _handle_message_created(self, event: MessageCreatedEvent) -> None:
        message = event.message
        self.local_storage.messages_dao.save_message(message)
        if message.is_mine:
            self._notify(self.callbacks.on_message_delivered, message, event.echo_id)
        else:
            self._notify(self.callbacks.on_message_received, message)

    def _handle_typing_off(self, event: ChatwootEvent) -> None:
        self._notify(self.callbacks.on_conversation_stopped_typing)

    def _handle_typing_on(self, event: ChatwootEvent) -> None:
        self._notify(self.callbacks.on_conversation_started_typing)

    def _handle_presence_update(self, event: PresenceUpdateEvent) -> None:
        if event.is_online:
            self._notify(self.callbacks.on_conversation_is_online)
        else:
            self._notify(self.callbacks.on_conversation_is_offline)

    # -- Teardown -------------------------------------------------------------

    async def clear(self) -> None:
        """Delete all cached data for this client."""
        await self.local_storage.clear()

    def dispose(self) -> None:
        """Cancel subscriptions, release storage, then drop the callbacks.

        Backend calls still in flight finish without touching storage.
        """
        self._disposed = True
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        self._is_listening_for_events = False
        self.local_storage.dispose()
        self.callbacks = ChatwootCallbacks()

    # -- Internal -------------------------------------------------------------

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _notify(self, handler: Callable[..., Any] | None, *args: Any) -> None:
        """Call *handler* if set; coroutine results run as background tasks."""
        if handler is None:
            return
        try:
            result = handler(*args)
            if asyncio.iscoroutine(result):
                self._fire_task(result)
        except Exception as exc:
            logger.error("Callback %s failed: %s", getattr(handler, "__name__", handler), exc)
