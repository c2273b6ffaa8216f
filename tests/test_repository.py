"""Tests for ChatwootRepository (service mocked, real memory storage)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from chatwoot_client.callbacks import ChatwootCallbacks
from chatwoot_client.connection import ChatwootWebSocketConnection, ConnectionState
from chatwoot_client.errors import ChatwootClientException, ChatwootClientExceptionType
from chatwoot_client.repository import ChatwootRepository
from chatwoot_client.storage import LocalStorage, MemoryRecordStore, SQLiteRecordStore
from chatwoot_client.types import (
    ChatwootActionType,
    ChatwootContact,
    ChatwootConversation,
    ChatwootNewMessageRequest,
    ChatwootUser,
)
from tests.conftest import (
    CONTACT,
    CONVERSATION,
    CONVERSATION_ID,
    PUBSUB_TOKEN,
    make_message,
    message_frame,
)


def _failure(kind=ChatwootClientExceptionType.NETWORK_FAILURE):
    return ChatwootClientException("boom", kind)


@pytest.fixture
def repo(service, storage, callbacks):
    return ChatwootRepository(service, storage, callbacks)


def _emit(repo, frame):
    """Deliver a frame through the repository's live connection."""
    repo.client_service.connection._dispatch(frame)


def _assert_no_callbacks(callbacks):
    for name, handler in vars(callbacks).items():
        assert handler.call_count == 0, name


class TestInitialize:
    @pytest.mark.asyncio
    async def test_refreshes_contact_and_conversation(self, repo, service, storage):
        new_contact = ChatwootContact(id=1, contact_identifier="source-abc", pubsub_token="tok-2")
        refreshed = ChatwootConversation(id=CONVERSATION_ID, inbox_id=3, status="resolved")
        service.get_contact.return_value = new_contact
        service.get_conversations.return_value = [ChatwootConversation(id=1), refreshed]

        await repo.initialize()

        assert storage.contact_dao.get_contact() == new_contact
        assert storage.conversation_dao.get_conversation() == refreshed
        service.start_websocket_connection.assert_called_once_with("tok-2")

    @pytest.mark.asyncio
    async def test_persists_user(self, repo, storage):
        user = ChatwootUser(identifier="u-1", name="Ada")
        await repo.initialize(user)
        assert storage.user_dao.get_user() == user

    @pytest.mark.asyncio
    async def test_keeps_cached_conversation_without_match(self, repo, service, storage):
        service.get_conversations.return_value = [ChatwootConversation(id=1, status="open")]
        await repo.initialize()
        assert storage.conversation_dao.get_conversation() == CONVERSATION

    @pytest.mark.asyncio
    async def test_contact_failure_reports_and_still_listens(self, repo, service, callbacks):
        error = _failure()
        service.get_contact.side_effect = error

        await repo.initialize()

        callbacks.on_error.assert_called_once_with(error)
        service.get_conversations.assert_not_awaited()
        service.start_websocket_connection.assert_called_once_with(PUBSUB_TOKEN)
        assert len(repo._subscriptions) == 1

    @pytest.mark.asyncio
    async def test_conversation_failure_reports(self, repo, service, storage, callbacks):
        service.get_conversations.side_effect = _failure(
            ChatwootClientExceptionType.REQUEST_REJECTED
        )
        await repo.initialize()
        callbacks.on_error.assert_called_once()
        assert storage.conversation_dao.get_conversation() == CONVERSATION
        service.start_websocket_connection.assert_called_once()


class TestPersistedMessages:
    def test_silent_when_empty(self, repo, callbacks):
        repo.get_persisted_messages()
        callbacks.on_persisted_messages_retrieved.assert_not_called()

    def test_reports_cached_messages(self, repo, storage, callbacks):
        storage.messages_dao.save_message(make_message(1))
        storage.messages_dao.save_message(make_message(2))
        repo.get_persisted_messages()
        (messages,), _ = callbacks.on_persisted_messages_retrieved.call_args
        assert [m.id for m in messages] == [1, 2]

    def test_no_network(self, repo, service):
        repo.get_persisted_messages()
        service.get_all_messages.assert_not_called()


class TestGetMessages:
    @pytest.mark.asyncio
    async def test_replaces_cache(self, repo, service, storage, callbacks):
        storage.messages_dao.save_message(make_message(1, "stale"))
        fetched = [make_message(2), make_message(3)]
        service.get_all_messages.return_value = fetched

        await repo.get_messages()

        assert [m.id for m in storage.messages_dao.get_messages()] == [2, 3]
        callbacks.on_messages_retrieved.assert_called_once_with(fetched)

    @pytest.mark.asyncio
    async def test_failure_leaves_cache(self, repo, service, storage, callbacks):
        storage.messages_dao.save_message(make_message(1))
        error = _failure()
        service.get_all_messages.side_effect = error

        await repo.get_messages()

        callbacks.on_error.assert_called_once_with(error)
        callbacks.on_messages_retrieved.assert_not_called()
        assert [m.id for m in storage.messages_dao.get_messages()] == [1]


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_success_caches_and_reports(self, repo, service, storage, callbacks):
        request = ChatwootNewMessageRequest(content="hi", echo_id="echo-1")
        created = make_message(10, "hi", echo_id="echo-1")
        service.create_message.return_value = created

        await repo.send_message(request)

        assert storage.messages_dao.get_messages() == [created]
        callbacks.on_message_sent.assert_called_once_with(created, "echo-1")

    @pytest.mark.parametrize("kind", list(ChatwootClientExceptionType))
    @pytest.mark.asyncio
    async def test_failure_attaches_echo_id(self, repo, service, storage, callbacks, kind):
        original = _failure(kind)
        service.create_message.side_effect = original

        await repo.send_message(ChatwootNewMessageRequest(content="hi", echo_id="echo-9"))

        (error,), _ = callbacks.on_error.call_args
        assert error.data == "echo-9"
        assert error.kind == kind
        assert error.cause == original.cause
        assert error.__cause__ is original
        callbacks.on_message_sent.assert_not_called()
        assert storage.messages_dao.get_messages() == []

    @pytest.mark.asyncio
    async def test_restarts_lapsed_channel(self, repo, service):
        service.connection = ChatwootWebSocketConnection("ws://localhost/cable", PUBSUB_TOKEN)
        service.create_message.return_value = make_message(10)

        await repo.send_message(ChatwootNewMessageRequest(content="hi"))

        service.start_websocket_connection.assert_called_once_with(PUBSUB_TOKEN)
        assert len(repo._subscriptions) == 1

    @pytest.mark.asyncio
    async def test_no_channel_no_restart(self, repo, service):
        service.create_message.return_value = make_message(10)
        await repo.send_message(ChatwootNewMessageRequest(content="hi"))
        service.start_websocket_connection.assert_not_called()

    @pytest.mark.asyncio
    async def test_active_channel_untouched(self, repo, service):
        repo.listen_for_events()
        _emit(repo, '{"type":"confirm_subscription"}')
        service.start_websocket_connection.reset_mock()
        service.create_message.return_value = make_message(10)

        await repo.send_message(ChatwootNewMessageRequest(content="hi"))

        service.start_websocket_connection.assert_not_called()

    @pytest.mark.asyncio
    async def test_restarts_channel_closed_after_confirmation(self, repo, service):
        repo.listen_for_events()
        _emit(repo, '{"type":"confirm_subscription"}')
        lapsed = service.connection
        old_subscription = repo._subscriptions[0]
        lapsed._state = ConnectionState.CLOSED
        service.start_websocket_connection.reset_mock()
        service.create_message.return_value = make_message(10)

        await repo.send_message(ChatwootNewMessageRequest(content="hi"))

        service.start_websocket_connection.assert_called_once_with(PUBSUB_TOKEN)
        assert service.connection is not lapsed
        assert old_subscription.active is False
        assert [s.connection for s in repo._subscriptions] == [service.connection]
        assert repo.is_listening_for_events is False

    @pytest.mark.asyncio
    async def test_echo_and_send_do_not_duplicate(self, repo, service, storage):
        created = make_message(10, "hi", echo_id="echo-1")
        service.create_message.return_value = created
        repo.listen_for_events()

        _emit(repo, message_frame("message.created", created.to_dict()))
        await repo.send_message(ChatwootNewMessageRequest(content="hi", echo_id="echo-1"))

        assert [m.id for m in storage.messages_dao.get_messages()] == [10]


class TestListenForEvents:
    def test_noop_without_token(self, repo, service, storage):
        storage.contact_dao.save_contact(ChatwootContact(id=1, pubsub_token=None))
        repo.listen_for_events()
        service.start_websocket_connection.assert_not_called()
        assert repo._subscriptions == []

    def test_noop_without_contact(self, service, callbacks):
        repo = ChatwootRepository(service, LocalStorage(MemoryRecordStore(), "k"), callbacks)
        repo.listen_for_events()
        service.start_websocket_connection.assert_not_called()

    def test_single_subscription_per_connection(self, repo, callbacks):
        repo.listen_for_events()
        repo.listen_for_events()
        assert len(repo._subscriptions) == 1
        _emit(repo, '{"type":"welcome"}')
        callbacks.on_welcome.assert_called_once_with()

    def test_welcome_and_ping(self, repo, callbacks):
        repo.listen_for_events()
        _emit(repo, '{"type":"welcome"}')
        _emit(repo, '{"type":"ping","message":1700000000}')
        callbacks.on_welcome.assert_called_once_with()
        callbacks.on_ping.assert_called_once_with()

    def test_confirm_subscription_sets_flag(self, repo, callbacks):
        repo.listen_for_events()
        assert repo.is_listening_for_events is False
        _emit(repo, '{"identifier":"x","type":"confirm_subscription"}')
        _emit(repo, '{"identifier":"x","type":"confirm_subscription"}')
        assert repo.is_listening_for_events is True
        assert callbacks.on_confirmed_subscription.call_count == 2

    def test_own_message_delivered(self, repo, storage, callbacks):
        repo.listen_for_events()
        data = make_message(20, "mine", message_type=0).to_dict()
        data["echo_id"] = "echo-20"

        _emit(repo, message_frame("message.created", data))

        (message, echo_id), _ = callbacks.on_message_delivered.call_args
        assert message.id == 20
        assert echo_id == "echo-20"
        assert storage.messages_dao.get_message(20) == message
        callbacks.on_message_received.assert_not_called()

    def test_agent_message_received(self, repo, storage, callbacks):
        repo.listen_for_events()
        data = make_message(21, "from agent", message_type=1).to_dict()

        _emit(repo, message_frame("message.created", data))

        (message,), _ = callbacks.on_message_received.call_args
        assert message.content == "from agent"
        callbacks.on_message_delivered.assert_not_called()
        assert storage.messages_dao.get_message(21) is not None

    def test_typing(self, repo, callbacks):
        repo.listen_for_events()
        _emit(repo, message_frame("conversation.typing_on", {}))
        _emit(repo, message_frame("conversation.typing_off", {}))
        callbacks.on_conversation_started_typing.assert_called_once_with()
        callbacks.on_conversation_stopped_typing.assert_called_once_with()

    def test_presence(self, repo, callbacks):
        repo.listen_for_events()
        _emit(repo, message_frame("presence.update", {"users": {"1": "busy", "2": "online"}}))
        callbacks.on_conversation_is_online.assert_called_once_with()
        callbacks.on_conversation_is_offline.assert_not_called()

        _emit(repo, message_frame("presence.update", {"users": {"1": "offline"}}))
        callbacks.on_conversation_is_offline.assert_called_once_with()

    @pytest.mark.parametrize(
        "frame",
        [
            "not json at all",
            "[]",
            '{"type":"disconnect"}',
            message_frame("conversation.status_changed", {"id": 1}),
            message_frame("message.created", {"content": "no id"}),
        ],
    )
    def test_unrecognized_frames_ignored(self, repo, storage, callbacks, frame):
        repo.listen_for_events()
        _emit(repo, frame)
        _assert_no_callbacks(callbacks)
        assert storage.messages_dao.get_messages() == []

    def test_callback_error_does_not_break_stream(self, repo, callbacks):
        callbacks.on_welcome.side_effect = RuntimeError("ui bug")
        repo.listen_for_events()
        _emit(repo, '{"type":"welcome"}')
        _emit(repo, '{"type":"ping"}')
        callbacks.on_ping.assert_called_once_with()

    def test_missing_callbacks_are_noops(self, service, storage):
        repo = ChatwootRepository(service, storage)
        repo.listen_for_events()
        _emit(repo, '{"type":"welcome"}')
        _emit(repo, message_frame("message.created", make_message(1).to_dict()))
        assert storage.messages_dao.get_message(1) is not None

    @pytest.mark.asyncio
    async def test_async_callback_scheduled(self, repo, callbacks):
        callbacks.on_message_received = AsyncMock()
        repo.listen_for_events()
        _emit(repo, message_frame("message.created", make_message(1, message_type=1).to_dict()))
        await asyncio.sleep(0)
        callbacks.on_message_received.assert_awaited_once()

    def test_callbacks_replaceable(self, repo):
        replacement = ChatwootCallbacks(on_welcome=lambda: seen.append("welcome"))
        seen = []
        repo.listen_for_events()
        repo.callbacks = replacement
        _emit(repo, '{"type":"welcome"}')
        assert seen == ["welcome"]


class TestSendAction:
    def test_forwards_with_token(self, repo, service):
        repo.send_action(ChatwootActionType.TYPING_ON)
        service.send_action.assert_called_once_with(PUBSUB_TOKEN, ChatwootActionType.TYPING_ON)

    def test_dropped_without_token(self, repo, service, storage):
        storage.contact_dao.save_contact(ChatwootContact(id=1))
        repo.send_action(ChatwootActionType.TYPING_OFF)
        service.send_action.assert_not_called()


class TestTeardown:
    def test_dispose_silences_retained_subscriptions(self, repo, storage, callbacks):
        repo.listen_for_events()
        subscription = repo._subscriptions[0]
        connection = repo.client_service.connection

        repo.dispose()

        frame = message_frame("message.created", make_message(30).to_dict())
        subscription._deliver(frame)
        connection._dispatch(frame)
        connection._dispatch('{"type":"welcome"}')

        assert subscription.active is False
        _assert_no_callbacks(callbacks)
        assert storage.messages_dao.get_message(30) is None
        assert repo._subscriptions == []

    def test_dispose_resets_callbacks_and_storage(self, repo, storage, callbacks):
        storage.dispose = lambda: calls.append("storage")
        calls = []
        repo.dispose()
        assert calls == ["storage"]
        assert repo.callbacks == ChatwootCallbacks()
        assert repo.callbacks is not callbacks

    @pytest.mark.asyncio
    async def test_late_result_after_dispose_is_silent(self, repo, service, callbacks):
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            raise _failure()

        service.get_all_messages.side_effect = slow_fetch
        task = asyncio.create_task(repo.get_messages())
        await asyncio.sleep(0)
        repo.dispose()
        gate.set()
        await task

        callbacks.on_error.assert_not_called()

    @pytest.mark.parametrize("operation", ["get_messages", "send_message", "initialize"])
    @pytest.mark.asyncio
    async def test_late_success_after_dispose_leaves_store_alone(
        self, service, callbacks, tmp_path, operation
    ):
        db_path = tmp_path / "widget.db"
        storage = LocalStorage(SQLiteRecordStore(db_path), "inbox-1:anonymous")
        storage.contact_dao.save_contact(CONTACT)
        storage.conversation_dao.save_conversation(CONVERSATION)
        repo = ChatwootRepository(service, storage, callbacks)
        gate = asyncio.Event()

        def gated(value):
            async def wait_then_return(*args):
                await gate.wait()
                return value

            return wait_then_return

        service.get_all_messages.side_effect = gated([make_message(1)])
        service.create_message.side_effect = gated(make_message(2))
        service.get_contact.side_effect = gated(CONTACT)
        if operation == "send_message":
            call = repo.send_message(ChatwootNewMessageRequest(content="hi"))
        else:
            call = getattr(repo, operation)()

        task = asyncio.create_task(call)
        await asyncio.sleep(0)
        repo.dispose()
        gate.set()
        await task

        _assert_no_callbacks(callbacks)
        service.start_websocket_connection.assert_not_called()
        reopened = LocalStorage(SQLiteRecordStore(db_path), "inbox-1:anonymous")
        try:
            assert reopened.messages_dao.get_messages() == []
        finally:
            reopened.dispose()

    @pytest.mark.asyncio
    async def test_clear(self, repo, storage):
        storage.messages_dao.save_message(make_message(1))
        await repo.clear()
        assert storage.contact_dao.get_contact() is None
        assert storage.conversation_dao.get_conversation() is None
        assert storage.messages_dao.get_messages() == []
