"""SQLite chat store backend.

Provides persistent chat storage using a SQLite database file.
Uses aiosqlite for async access.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from .base import ChatStore, ensure_persistable
from .errors import DeleteError, InsertError, QueryError, StoreConnectionError, UpdateError
from .models import Chat, Message, MessageRole, MessageStatus

logger = logging.getLogger(__name__)


def _format_ts(value: datetime) -> str:
    # Fixed precision keeps lexical order equal to chronological order
    return value.isoformat(timespec="microseconds")


class SQLiteChatStore(ChatStore):
    """SQLite-backed chat store.

    Each write runs in a single transaction that is rolled back on failure.
    Messages are upserted in place so their row order, used to break
    timestamp ties, never changes.
    """

    def __init__(self, path: str | Path = "./deepchat.sqlite3"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._connection is not None:
            return
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._create_schema()
        except (aiosqlite.Error, OSError) as e:
            self._connection = None
            raise StoreConnectionError(f"Cannot open {self._db_path}: {e}") from e
        logger.debug("Connected to chat store at %s", self._db_path)

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                reasoning_content TEXT,
                timestamp TEXT NOT NULL,
                status TEXT NOT NULL,
                FOREIGN KEY (chat_id) REFERENCES chats(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_chat
            ON messages(chat_id, timestamp)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreConnectionError("Chat store is not connected")
        return self._connection

    async def save_chat(self, chat: Chat) -> None:
        """Upsert the chat row and its persistable messages in one transaction.

        Raises:
            InsertError: If the chat did not exist yet
            UpdateError: If an existing chat could not be updated
        """
        conn = self._conn()
        async with self._write_lock:
            existed = False
            try:
                async with conn.execute("SELECT 1 FROM chats WHERE id = ?", (chat.id,)) as cursor:
                    existed = await cursor.fetchone() is not None

                await conn.execute("""
                    INSERT INTO chats (id, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title = excluded.title,
                        updated_at = excluded.updated_at
                """, (chat.id, chat.title, _format_ts(chat.created_at), _format_ts(chat.updated_at)))

                for message in chat.messages:
                    if message.is_persistable:
                        await self._upsert_message(conn, message, chat.id)

                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                error = UpdateError if existed else InsertError
                raise error(f"Cannot save chat {chat.id}: {e}") from e

    async def save_message(self, message: Message, chat_id: str) -> None:
        ensure_persistable(message)
        conn = self._conn()
        async with self._write_lock:
            try:
                await self._upsert_message(conn, message, chat_id)
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                raise InsertError(f"Cannot save message {message.id}: {e}") from e

    async def _upsert_message(self, conn: aiosqlite.Connection, message: Message, chat_id: str) -> None:
        await conn.execute("""
            INSERT INTO messages
            (id, chat_id, role, content, reasoning_content, timestamp, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                content = excluded.content,
                reasoning_content = excluded.reasoning_content,
                status = excluded.status
        """, (
            message.id,
            chat_id,
            message.role.value,
            message.content,
            message.reasoning_content,
            _format_ts(message.timestamp),
            message.status.value,
        ))

    async def get_chat(self, chat_id: str) -> Chat | None:
        conn = self._conn()
        try:
            async with conn.execute(
                "SELECT id, title, created_at, updated_at FROM chats WHERE id = ?",
                (chat_id,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return await self._chat_from_row(conn, row)
        except aiosqlite.Error as e:
            raise QueryError(f"Cannot load chat {chat_id}: {e}") from e

    async def fetch_all_chats(self) -> list[Chat]:
        conn = self._conn()
        try:
            async with conn.execute(
                "SELECT id, title, created_at, updated_at FROM chats ORDER BY updated_at DESC"
            ) as cursor:
                rows = await cursor.fetchall()
            return [await self._chat_from_row(conn, row) for row in rows]
        except aiosqlite.Error as e:
            raise QueryError(f"Cannot list chats: {e}") from e

    async def _chat_from_row(self, conn: aiosqlite.Connection, row: tuple) -> Chat:
        chat_id, title, created_at, updated_at = row
        async with conn.execute(
            """
            SELECT id, role, content, reasoning_content, timestamp, status
            FROM messages
            WHERE chat_id = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (chat_id,)
        ) as cursor:
            message_rows = await cursor.fetchall()

        messages = []
        for message_id, role, content, reasoning, ts, status in message_rows:
            messages.append(Message(
                id=message_id,
                role=MessageRole(role),
                content=content,
                reasoning_content=reasoning,
                timestamp=datetime.fromisoformat(ts),
                status=MessageStatus(status),
            ))

        return Chat(
            id=chat_id,
            title=title,
            created_at=datetime.fromisoformat(created_at),
            updated_at=datetime.fromisoformat(updated_at),
            messages=messages,
        )

    async def delete_chat(self, chat: Chat) -> None:
        conn = self._conn()
        async with self._write_lock:
            try:
                await conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat.id,))
                await conn.execute("DELETE FROM chats WHERE id = ?", (chat.id,))
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                raise DeleteError(f"Cannot delete chat {chat.id}: {e}") from e

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
