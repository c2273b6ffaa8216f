# =============================================================================
# Chatwoot Python Client -- Local Storage
# =============================================================================
#
# Record stores hold JSON-able dicts in named "boxes".  Typed DAOs sit on top
# and namespace their boxes with a storage key, so several clients (inboxes,
# users) can share one database file.
# =============================================================================

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable

import orjson

from ._logging import logger
from .types import ChatwootContact, ChatwootConversation, ChatwootMessage, ChatwootUser

_SCHEMA_VERSION = 1


class MemoryRecordStore:
    """Non-persistent store; contents vanish with the process."""

    def __init__(self) -> None:
        self._boxes: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, box: str, key: str) -> Any | None:
        with self._lock:
            return self._boxes.get(box, {}).get(key)

    def put(self, box: str, key: str, value: Any) -> None:
        with self._lock:
            self._boxes.setdefault(box, {})[key] = value

    def values(self, box: str) -> list[Any]:
        with self._lock:
            return list(self._boxes.get(box, {}).values())

    def replace(self, box: str, records: Iterable[tuple[str, Any]]) -> None:
        new_box = dict(records)
        with self._lock:
            self._boxes[box] = new_box

    def clear(self, prefix: str = "") -> None:
        with self._lock:
            for box in [b for b in self._boxes if b.startswith(prefix)]:
                del self._boxes[box]

    def close(self) -> None:
        pass


class SQLiteRecordStore:
    """Persistent store backed by a single SQLite file.

    Rows keep their insertion position on upsert, so ``values()`` returns
    records in the order they were first written.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._lock = threading.Lock()
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
        self._configure()
        self._apply_migrations()

    def _configure(self) -> None:
        cursor = self._conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    def _apply_migrations(self) -> None:
        user_version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if user_version == 0:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    box TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    UNIQUE (box, key)
                )
                """
            )
            self._conn.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
        elif user_version != _SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema version: {user_version}")

    def get(self, box: str, key: str) -> Any | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM records WHERE box=? AND key=?", (box, key)
            ).fetchone()
        return orjson.loads(row[0]) if row else None

    def put(self, box: str, key: str, value: Any) -> None:
        encoded = orjson.dumps(value).decode()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO records (box, key, value) VALUES (?, ?, ?)
                ON CONFLICT (box, key) DO UPDATE SET value = excluded.value
                """,
                (box, key, encoded),
            )

    def values(self, box: str) -> list[Any]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT value FROM records WHERE box=? ORDER BY seq", (box,)
            ).fetchall()
        return [orjson.loads(row[0]) for row in rows]

    def replace(self, box: str, records: Iterable[tuple[str, Any]]) -> None:
        rows = [(box, key, orjson.dumps(value).decode()) for key, value in records]
        with self._lock:
            cursor = self._conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute("DELETE FROM records WHERE box=?", (box,))
                cursor.executemany(
                    """
                    INSERT INTO records (box, key, value) VALUES (?, ?, ?)
                    ON CONFLICT (box, key) DO UPDATE SET value = excluded.value
                    """,
                    rows,
                )
                cursor.execute("COMMIT")
            except Exception:
                if self._conn.in_transaction:
                    cursor.execute("ROLLBACK")
                raise
            finally:
                cursor.close()

    def clear(self, prefix: str = "") -> None:
        pattern = _escape_like(prefix) + "%"
        with self._lock:
            self._conn.execute("DELETE FROM records WHERE box LIKE ? ESCAPE '\\'", (pattern,))

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


RecordStore = MemoryRecordStore | SQLiteRecordStore


# -- DAOs ---------------------------------------------------------------------


class _SingleRecordDao:
    """One record per box, stored under a fixed key."""

    _KEY = "current"

    def __init__(self, store: RecordStore, box: str) -> None:
        self._store = store
        self._box = box

    def _get(self) -> dict[str, Any] | None:
        return self._store.get(self._box, self._KEY)

    def _save(self, data: dict[str, Any]) -> None:
        self._store.put(self._box, self._KEY, data)


class UserDao(_SingleRecordDao):
    def get_user(self) -> ChatwootUser | None:
        data = self._get()
        return ChatwootUser.from_dict(data) if data else None

    def save_user(self, user: ChatwootUser) -> None:
        self._save(user.to_dict())


class ContactDao(_SingleRecordDao):
    def get_contact(self) -> ChatwootContact | None:
        data = self._get()
        return ChatwootContact.from_dict(data) if data else None

    def save_contact(self, contact: ChatwootContact) -> None:
        self._save(contact.to_dict())


class ConversationDao(_SingleRecordDao):
    def get_conversation(self) -> ChatwootConversation | None:
        data = self._get()
        return ChatwootConversation.from_dict(data) if data else None

    def save_conversation(self, conversation: ChatwootConversation) -> None:
        self._save(conversation.to_dict())


class MessagesDao:
    """Messages boxed per conversation, keyed by message id.

    Reads and full overwrites target the active (cached) conversation.
    Single-message saves go to the message's own conversation.
    """

    def __init__(self, store: RecordStore, box_prefix: str, conversations: ConversationDao) -> None:
        self._store = store
        self._box_prefix = box_prefix
        self._conversations = conversations

    def _box(self, conversation_id: int | None) -> str:
        return f"{self._box_prefix}:{conversation_id if conversation_id is not None else '-'}"

    def _active_box(self) -> str:
        conversation = self._conversations.get_conversation()
        return self._box(conversation.id if conversation else None)

    def get_messages(self) -> list[ChatwootMessage]:
        return [ChatwootMessage.from_dict(m) for m in self._store.values(self._active_box())]

    def get_message(self, message_id: int) -> ChatwootMessage | None:
        data = self._store.get(self._active_box(), str(message_id))
        return ChatwootMessage.from_dict(data) if data else None

    def save_message(self, message: ChatwootMessage) -> None:
        """Insert or replace by id."""
        if message.conversation_id is not None:
            box = self._box(message.conversation_id)
        else:
            box = self._active_box()
        self._store.put(box, str(message.id), message.to_dict())

    def save_all_messages(self, messages: list[ChatwootMessage]) -> None:
        """Replace the active conversation's messages with *messages*."""
        self._store.replace(self._active_box(), ((str(m.id), m.to_dict()) for m in messages))

    def clear(self) -> None:
        self._store.clear(self._box_prefix + ":")


class LocalStorage:
    """Typed access to the cached user, contact, conversation and messages.

    Args:
        store: Backing record store.
        storage_key: Namespace for this client's boxes, typically derived
            from the inbox identifier and the user identifier.
    """

    def __init__(self, store: RecordStore, storage_key: str) -> None:
        self._store = store
        self._prefix = f"{storage_key}:"
        self.user_dao = UserDao(store, self._prefix + "user")
        self.contact_dao = ContactDao(store, self._prefix + "contact")
        self.conversation_dao = ConversationDao(store, self._prefix + "conversation")
        self.messages_dao = MessagesDao(store, self._prefix + "messages", self.conversation_dao)

    @classmethod
    def open(
        cls,
        storage_key: str,
        *,
        enable_persistence: bool = True,
        db_path: str | Path | None = None,
    ) -> LocalStorage:
        """Build storage with a SQLite store, or an in-memory one."""
        if enable_persistence:
            if db_path is None:
                raise ValueError("db_path is required when persistence is enabled")
            store: RecordStore = SQLiteRecordStore(db_path)
        else:
            store = MemoryRecordStore()
        return cls(store, storage_key)

    async def clear(self) -> None:
        """Delete every record this client owns."""
        await asyncio.to_thread(self._store.clear, self._prefix)
        logger.debug("Cleared local storage (%s)", self._prefix)

    def dispose(self) -> None:
        self._store.close()
