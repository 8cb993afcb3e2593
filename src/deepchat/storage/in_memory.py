"""In-memory chat store backend.

Simple dict-based storage for session-only use.
Data is lost when the application exits.
"""

import asyncio

from .base import ChatStore, ensure_persistable
from .models import Chat, Message


class InMemoryChatStore(ChatStore):
    """In-memory chat store (session-only).

    Stores copies, so later in-place edits of a chat or message are only
    visible after they are saved again. Suitable for testing.
    """

    def __init__(self) -> None:
        self._chats: dict[str, Chat] = {}
        self._messages: dict[str, dict[str, Message]] = {}
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def save_chat(self, chat: Chat) -> None:
        async with self._lock:
            self._chats[chat.id] = chat.model_copy(update={"messages": []}, deep=True)
            messages = self._messages.setdefault(chat.id, {})
            for message in chat.messages:
                if message.is_persistable:
                    messages[message.id] = message.model_copy(deep=True)

    async def save_message(self, message: Message, chat_id: str) -> None:
        ensure_persistable(message)
        async with self._lock:
            self._messages.setdefault(chat_id, {})[message.id] = message.model_copy(deep=True)

    async def get_chat(self, chat_id: str) -> Chat | None:
        chat = self._chats.get(chat_id)
        if chat is None:
            return None
        return self._assemble(chat)

    async def fetch_all_chats(self) -> list[Chat]:
        chats = [self._assemble(chat) for chat in self._chats.values()]
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)

    async def delete_chat(self, chat: Chat) -> None:
        async with self._lock:
            self._chats.pop(chat.id, None)
            self._messages.pop(chat.id, None)

    def _assemble(self, chat: Chat) -> Chat:
        messages = [m.model_copy(deep=True) for m in self._messages.get(chat.id, {}).values()]
        # Stable sort keeps insertion order for equal timestamps
        messages.sort(key=lambda m: m.timestamp)
        return chat.model_copy(update={"messages": messages}, deep=True)

    @property
    def backend_type(self) -> str:
        return "memory"
