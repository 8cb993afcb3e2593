"""Tests for chat store backends."""
from datetime import timedelta

import aiosqlite
import pytest

from deepchat.storage import (
    Chat,
    InsertError,
    Message,
    MessageRole,
    MessageStatus,
    StoreConnectionError,
    UpdateError,
    create_chat_store,
)
from deepchat.storage.in_memory import InMemoryChatStore
from deepchat.storage.models import utcnow
from deepchat.storage.sqlite import SQLiteChatStore


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """Each backend, connected."""
    if request.param == "memory":
        store = create_chat_store("memory")
    else:
        store = create_chat_store("sqlite", path=tmp_path / "chats.sqlite3")
    await store.connect()
    yield store
    await store.disconnect()


def make_chat(title: str = "Greeting", **kwargs) -> Chat:
    chat = Chat(title=title, **kwargs)
    chat.messages.append(Message(role=MessageRole.USER, content="Hello"))
    chat.messages.append(Message(
        role=MessageRole.ASSISTANT,
        content="Hi there",
        reasoning_content="The user greeted me",
    ))
    return chat


class TestChatStore:
    """Behaviour shared by every backend."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        """Test that a saved chat comes back unchanged."""
        chat = make_chat()
        await store.save_chat(chat)

        loaded = await store.get_chat(chat.id)

        assert loaded == chat
        assert loaded is not chat

    @pytest.mark.asyncio
    async def test_missing_chat(self, store):
        """Test loading an unknown id."""
        assert await store.get_chat("nope") is None

    @pytest.mark.asyncio
    async def test_save_message_appends(self, store):
        """Test adding a message to an existing chat."""
        chat = make_chat()
        await store.save_chat(chat)
        extra = Message(role=MessageRole.USER, content="More")

        await store.save_message(extra, chat.id)

        loaded = await store.get_chat(chat.id)
        assert [m.content for m in loaded.messages] == ["Hello", "Hi there", "More"]

    @pytest.mark.asyncio
    async def test_messages_ordered_by_timestamp(self, store):
        """Test that messages load in timestamp order."""
        now = utcnow()
        chat = Chat(title="Order")
        late = Message(role=MessageRole.ASSISTANT, content="second", timestamp=now)
        early = Message(role=MessageRole.USER, content="first", timestamp=now - timedelta(seconds=1))
        chat.messages.extend([late, early])

        await store.save_chat(chat)

        loaded = await store.get_chat(chat.id)
        assert [m.content for m in loaded.messages] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self, store):
        """Test tie-breaking, including after a message is updated."""
        now = utcnow()
        chat = Chat(title="Ties")
        first = Message(role=MessageRole.USER, content="a", timestamp=now)
        second = Message(role=MessageRole.ASSISTANT, content="b", timestamp=now)
        chat.messages.extend([first, second])
        await store.save_chat(chat)

        first.content = "a, edited"
        await store.save_message(first, chat.id)

        loaded = await store.get_chat(chat.id)
        assert [m.content for m in loaded.messages] == ["a, edited", "b"]

    @pytest.mark.asyncio
    async def test_message_update_replaces_status(self, store):
        """Test that saving a message again updates it in place."""
        chat = Chat(title="Status")
        message = Message(role=MessageRole.USER, content="Hello", status=MessageStatus.SENDING)
        chat.messages.append(message)
        await store.save_chat(chat)

        message.status = MessageStatus.SUCCESS
        await store.save_message(message, chat.id)

        loaded = await store.get_chat(chat.id)
        assert len(loaded.messages) == 1
        assert loaded.messages[0].status is MessageStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_fetch_all_most_recent_first(self, store):
        """Test the chat list order."""
        now = utcnow()
        old = make_chat("old", updated_at=now - timedelta(days=2))
        new = make_chat("new", updated_at=now)
        middle = make_chat("middle", updated_at=now - timedelta(hours=1))
        for chat in (old, new, middle):
            await store.save_chat(chat)

        chats = await store.fetch_all_chats()

        assert [c.title for c in chats] == ["new", "middle", "old"]
        assert len(chats[0].messages) == 2

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Test that deleting removes the chat and its messages."""
        keep, drop = make_chat("keep"), make_chat("drop")
        await store.save_chat(keep)
        await store.save_chat(drop)

        await store.delete_chat(drop)

        assert await store.get_chat(drop.id) is None
        assert [c.id for c in await store.fetch_all_chats()] == [keep.id]

    @pytest.mark.asyncio
    async def test_streaming_message_is_rejected(self, store):
        """Test that a message still streaming cannot be saved directly."""
        chat = make_chat()
        await store.save_chat(chat)
        placeholder = Message(role=MessageRole.ASSISTANT, status=MessageStatus.STREAMING)

        with pytest.raises(ValueError):
            await store.save_message(placeholder, chat.id)

    @pytest.mark.asyncio
    async def test_streaming_message_is_skipped_in_chat(self, store):
        """Test that saving a chat leaves out its streaming placeholder."""
        chat = make_chat()
        chat.messages.append(Message(role=MessageRole.ASSISTANT, status=MessageStatus.STREAMING))

        await store.save_chat(chat)

        loaded = await store.get_chat(chat.id)
        assert len(loaded.messages) == 2
        assert all(m.status is not MessageStatus.STREAMING for m in loaded.messages)

    @pytest.mark.asyncio
    async def test_loaded_copy_is_independent(self, store):
        """Test that editing a loaded chat does not touch the store."""
        chat = make_chat()
        await store.save_chat(chat)

        loaded = await store.get_chat(chat.id)
        loaded.messages[0].content = "changed"

        again = await store.get_chat(chat.id)
        assert again.messages[0].content == "Hello"

    @pytest.mark.asyncio
    async def test_context_manager(self, store):
        """Test the async context manager."""
        async with store as opened:
            assert opened is store
            assert store.backend_type in ("memory", "sqlite")


class TestSQLiteChatStore:
    """SQLite-specific behaviour."""

    @pytest.mark.asyncio
    async def test_not_connected(self, tmp_path):
        """Test that using a closed store raises a connection error."""
        store = SQLiteChatStore(tmp_path / "chats.sqlite3")

        with pytest.raises(StoreConnectionError) as exc_info:
            await store.get_chat("x")
        assert str(exc_info.value).startswith("connection error")

    @pytest.mark.asyncio
    async def test_persists_across_reconnect(self, tmp_path):
        """Test that data survives closing the database."""
        path = tmp_path / "chats.sqlite3"
        chat = make_chat()

        async with SQLiteChatStore(path) as store:
            await store.save_chat(chat)

        async with SQLiteChatStore(path) as store:
            loaded = await store.get_chat(chat.id)

        assert loaded == chat

    @pytest.mark.asyncio
    async def test_message_for_unknown_chat(self, tmp_path):
        """Test that a message cannot reference a missing chat."""
        async with SQLiteChatStore(tmp_path / "chats.sqlite3") as store:
            with pytest.raises(InsertError):
                await store.save_message(Message(role=MessageRole.USER, content="orphan"), "missing")

    @pytest.mark.asyncio
    async def test_save_chat_error_kind(self, tmp_path):
        """Test that a failed write of a new chat is an insert error, of a known one an update error."""
        path = tmp_path / "chats.sqlite3"
        async with SQLiteChatStore(path) as store:
            known = make_chat("known")
            await store.save_chat(known)

            async with aiosqlite.connect(path) as other:
                await other.execute("""
                    CREATE TRIGGER reject_messages BEFORE INSERT ON messages
                    BEGIN SELECT RAISE(ABORT, 'messages are read-only'); END
                """)
                await other.commit()

            fresh = make_chat("fresh")
            with pytest.raises(InsertError):
                await store.save_chat(fresh)
            assert await store.get_chat(fresh.id) is None

            known.messages.append(Message(role=MessageRole.USER, content="More"))
            with pytest.raises(UpdateError):
                await store.save_chat(known)
            assert len((await store.get_chat(known.id)).messages) == 2

    @pytest.mark.asyncio
    async def test_unopenable_path(self, tmp_path):
        """Test that a bad database path raises a connection error."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        store = SQLiteChatStore(blocker / "chats.sqlite3")

        with pytest.raises(StoreConnectionError):
            await store.connect()


class TestFactory:
    """Tests for create_chat_store."""

    def test_memory(self):
        assert isinstance(create_chat_store("memory"), InMemoryChatStore)

    def test_sqlite(self, tmp_path):
        store = create_chat_store("sqlite", path=tmp_path / "x.db")
        assert isinstance(store, SQLiteChatStore)
        assert store.db_path == tmp_path / "x.db"

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported chat store backend"):
            create_chat_store("postgres")
