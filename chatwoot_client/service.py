# =============================================================================
# Chatwoot Python Client -- Client API Service
# =============================================================================
#
# REST calls against the Chatwoot public client API plus ownership of the
# realtime connection.  Every failure surfaces as ChatwootClientException.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

import httpx
import orjson

from ._logging import logger
from .config import ChatwootClientConfig
from .connection import ChatwootWebSocketConnection
from .constants import (
    CONTACT_PATH,
    CONTACTS_PATH,
    CONVERSATIONS_PATH,
    MESSAGES_PATH,
)
from .errors import ChatwootClientException, ChatwootClientExceptionType
from .storage import LocalStorage
from .types import (
    ChatwootActionType,
    ChatwootContact,
    ChatwootConversation,
    ChatwootMessage,
    ChatwootNewMessageRequest,
    ChatwootUser,
)

T = TypeVar("T")


class ChatwootClientService:
    """Backend access for one widget client.

    Contact and conversation identifiers used in request paths are read
    from *local_storage*, so the service always addresses whatever the
    cache currently holds.

    Args:
        config: Base URL, inbox identifier and timeouts.
        local_storage: Cache providing the contact and conversation ids.
        http_client: Pre-built ``httpx.AsyncClient`` (e.g. for tests).
            When omitted the service creates and owns one.
    """

    def __init__(
        self,
        config: ChatwootClientConfig,
        local_storage: LocalStorage,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._local_storage = local_storage
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout,
            headers={"Accept": "application/json"},
        )
        self._connection: ChatwootWebSocketConnection | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @property
    def connection(self) -> ChatwootWebSocketConnection | None:
        """Current realtime connection, ``None`` until started."""
        return self._connection

    # -- Contacts -------------------------------------------------------------

    async def create_contact(self, user: ChatwootUser | None = None) -> ChatwootContact:
        body: dict[str, Any] = {}
        if user is not None:
            body = {k: v for k, v in user.to_dict().items() if v not in (None, {})}
        payload = await self._request("POST", self._contacts_path(), json=body)
        return self._parse(ChatwootContact.from_dict, payload, "contact")

    async def get_contact(self) -> ChatwootContact:
        payload = await self._request("GET", self._contact_path())
        return self._parse(ChatwootContact.from_dict, payload, "contact")

    # -- Conversations --------------------------------------------------------

    async def create_conversation(self) -> ChatwootConversation:
        payload = await self._request("POST", self._conversations_path(), json={})
        return self._parse(ChatwootConversation.from_dict, payload, "conversation")

    async def get_conversations(self) -> list[ChatwootConversation]:
        payload = await self._request("GET", self._conversations_path())
        return self._parse_list(ChatwootConversation.from_dict, payload, "conversations")

    # -- Messages -------------------------------------------------------------

    async def get_all_messages(self) -> list[ChatwootMessage]:
        payload = await self._request("GET", self._messages_path())
        return self._parse_list(ChatwootMessage.from_dict, payload, "messages")

    async def create_message(self, request: ChatwootNewMessageRequest) -> ChatwootMessage:
        payload = await self._request("POST", self._messages_path(), json=request.to_dict())
        return self._parse(ChatwootMessage.from_dict, payload, "message")

    # -- Realtime -------------------------------------------------------------

    def start_websocket_connection(self, pubsub_token: str) -> None:
        """Open a realtime connection for *pubsub_token*, or keep the live one."""
        current = self._connection
        if current is not None and current.pubsub_token == pubsub_token and not current.is_closed:
            return
        if current is not None:
            self._fire_task(current.close())

        logger.debug("Starting realtime connection to %s", self._config.websocket_url)
        self._connection = ChatwootWebSocketConnection(
            self._config.websocket_url,
            pubsub_token,
            open_timeout=self._config.websocket_open_timeout,
        )
        self._connection.start()

    def send_action(self, pubsub_token: str, action: ChatwootActionType) -> None:
        """Broadcast *action* (typing, presence) on the realtime channel."""
        self.start_websocket_connection(pubsub_token)
        connection = self._connection
        if connection is None:
            logger.warning("No realtime connection, dropping action %s", action.value)
            return
        connection.send_action(action)

    async def close(self) -> None:
        """Close the realtime connection and the owned HTTP client."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        if self._owns_http:
            await self._http.aclose()

    # -- Internal: paths ------------------------------------------------------

    def _contacts_path(self) -> str:
        return CONTACTS_PATH.format(inbox=self._config.inbox_identifier)

    def _contact_identifier(self) -> str:
        contact = self._local_storage.contact_dao.get_contact()
        if contact is None or not contact.contact_identifier:
            raise ChatwootClientException(
                "No contact cached for this client",
                ChatwootClientExceptionType.NOT_INITIALIZED,
            )
        return contact.contact_identifier

    def _contact_path(self) -> str:
        return CONTACT_PATH.format(
            inbox=self._config.inbox_identifier, contact=self._contact_identifier()
        )

    def _conversations_path(self) -> str:
        return CONVERSATIONS_PATH.format(
            inbox=self._config.inbox_identifier, contact=self._contact_identifier()
        )

    def _messages_path(self) -> str:
        conversation = self._local_storage.conversation_dao.get_conversation()
        if conversation is None:
            raise ChatwootClientException(
                "No conversation cached for this client",
                ChatwootClientExceptionType.NOT_INITIALIZED,
            )
        return MESSAGES_PATH.format(
            inbox=self._config.inbox_identifier,
            contact=self._contact_identifier(),
            conversation=conversation.id,
        )

    # -- Internal: transport --------------------------------------------------

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ChatwootClientException(
                f"{method} {path} rejected with status {exc.response.status_code}",
                ChatwootClientExceptionType.REQUEST_REJECTED,
            ) from exc
        except httpx.HTTPError as exc:
            raise ChatwootClientException(
                f"{method} {path} failed: {exc}",
                ChatwootClientExceptionType.NETWORK_FAILURE,
            ) from exc

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise ChatwootClientException(
                f"{method} {path} returned invalid JSON",
                ChatwootClientExceptionType.MALFORMED_RESPONSE,
            ) from exc

    def _parse(self, factory: Callable[[dict[str, Any]], T], payload: Any, what: str) -> T:
        if not isinstance(payload, dict):
            raise ChatwootClientException(
                f"Expected {what} object, got {type(payload).__name__}",
                ChatwootClientExceptionType.MALFORMED_RESPONSE,
            )
        try:
            return factory(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ChatwootClientException(
                f"Malformed {what}: {exc}",
                ChatwootClientExceptionType.MALFORMED_RESPONSE,
            ) from exc

    def _parse_list(
        self, factory: Callable[[dict[str, Any]], T], payload: Any, what: str
    ) -> list[T]:
        # Some Chatwoot versions wrap list responses in {"payload": [...]}.
        if isinstance(payload, dict) and isinstance(payload.get("payload"), list):
            payload = payload["payload"]
        if not isinstance(payload, list):
            raise ChatwootClientException(
                f"Expected {what} list, got {type(payload).__name__}",
                ChatwootClientExceptionType.MALFORMED_RESPONSE,
            )
        return [self._parse(factory, item, what) for item in payload]
