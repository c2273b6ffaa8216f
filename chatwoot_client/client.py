# =============================================================================
# Chatwoot Python Client -- Widget Client
# =============================================================================
#
# Primary public API.  Sets up storage, makes sure a contact and a
# conversation exist on the backend, then drives the repository.
# =============================================================================

from __future__ import annotations

from typing import Any

import httpx

from ._logging import logger
from .callbacks import ChatwootCallbacks
from .config import ChatwootClientConfig
from .repository import ChatwootRepository
from .service import ChatwootClientService
from .storage import LocalStorage
from .types import ChatwootActionType, ChatwootNewMessageRequest, ChatwootUser


class ChatwootClient:
    """Chat widget client for one inbox and one user.

    Build it with :meth:`create`, which performs the backend setup and the
    initial sync.  Results arrive through the callbacks.

    Example::

        callbacks = ChatwootCallbacks(on_message_received=print)
        async with await ChatwootClient.create(
            "https://app.chatwoot.com", "inbox-id", callbacks=callbacks
        ) as client:
            await client.load_messages()
            await client.send_message("Hello!")
    """

    def __init__(
        self,
        repository: ChatwootRepository,
        config: ChatwootClientConfig,
        user: ChatwootUser | None = None,
    ) -> None:
        self._repository = repository
        self._config = config
        self._user = user

    @classmethod
    async def create(
        cls,
        base_url: str,
        inbox_identifier: str,
        *,
        user: ChatwootUser | None = None,
        enable_persistence: bool = True,
        callbacks: ChatwootCallbacks | None = None,
        storage_path: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> ChatwootClient:
        """Create a client, registering contact and conversation if needed.

        Raises:
            ChatwootClientException: If the contact or the conversation
                cannot be created.
        """
        config = ChatwootClientConfig(
            base_url=base_url,
            inbox_identifier=inbox_identifier,
            enable_persistence=enable_persistence,
            storage_path=storage_path,
        )
        return await cls.from_config(config, user=user, callbacks=callbacks, http_client=http_client)

    @classmethod
    async def from_config(
        cls,
        config: ChatwootClientConfig,
        *,
        user: ChatwootUser | None = None,
        callbacks: ChatwootCallbacks | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> ChatwootClient:
        local_storage = LocalStorage.open(
            storage_key(config, user),
            enable_persistence=config.enable_persistence,
            db_path=config.database_path,
        )
        service = ChatwootClientService(config, local_storage, http_client=http_client)

        try:
            if local_storage.contact_dao.get_contact() is None:
                contact = await service.create_contact(user)
                local_storage.contact_dao.save_contact(contact)
                logger.info("Created contact %s", contact.id)
            if local_storage.conversation_dao.get_conversation() is None:
                conversation = await service.create_conversation()
                local_storage.conversation_dao.save_conversation(conversation)
                logger.info("Created conversation %s", conversation.id)
        except BaseException:
            await service.close()
            local_storage.dispose()
            raise

        repository = ChatwootRepository(service, local_storage, callbacks)
        await repository.initialize(user)
        return cls(repository, config, user)

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> ChatwootClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.dispose()

    # -- Properties -----------------------------------------------------------

    @property
    def repository(self) -> ChatwootRepository:
        return self._repository

    @property
    def callbacks(self) -> ChatwootCallbacks:
        return self._repository.callbacks

    @callbacks.setter
    def callbacks(self, value: ChatwootCallbacks) -> None:
        self._repository.callbacks = value

    # -- Operations -----------------------------------------------------------

    async def load_messages(self) -> None:
        """Report cached messages, then fetch fresh ones from the backend."""
        self._repository.get_persisted_messages()
        await self._repository.get_messages()

    async def send_message(self, content: str, echo_id: str | None = None) -> str:
        """Send *content*; returns the echo id used to track it."""
        if echo_id is None:
            request = ChatwootNewMessageRequest(content=content)
        else:
            request = ChatwootNewMessageRequest(content=content, echo_id=echo_id)
        await self._repository.send_message(request)
        return request.echo_id

    def send_action(self, action: ChatwootActionType) -> None:
        self._repository.send_action(action)

    async def clear_client_data(self) -> None:
        """Delete all data this client stored locally."""
        await self._repository.clear()

    async def dispose(self) -> None:
        """Stop listening, release storage and close network resources."""
        self._repository.dispose()
        await self._repository.client_service.close()


def storage_key(config: ChatwootClientConfig, user: ChatwootUser | None) -> str:
    """Namespace separating stored data per inbox and user."""
    identifier = user.identifier if user is not None and user.identifier else "anonymous"
    return f"{config.inbox_identifier}:{identifier}"
