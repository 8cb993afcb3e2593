"""Abstract base class for chat store backends.

This module defines the interface the conversation engine persists through.
The abstraction hides:
- Storage format and schema
- Persistence mechanism (file, database, in-memory)
- Connection management and transactions
"""

from abc import ABC, abstractmethod

from .models import Chat, Message


class ChatStore(ABC):
    """Abstract chat store backend.

    Every operation raises a :class:`~deepchat.storage.errors.PersistenceError`
    subclass on failure. Writes are serialized; a chat's message list is never
    written by two operations at once.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store backend gracefully."""

    @abstractmethod
    async def save_chat(self, chat: Chat) -> None:
        """Insert or update a chat and all of its persistable messages.

        Messages still streaming are skipped.
        """

    @abstractmethod
    async def save_message(self, message: Message, chat_id: str) -> None:
        """Insert or update a single message of a chat.

        Raises:
            ValueError: If the message is still streaming
        """

    @abstractmethod
    async def get_chat(self, chat_id: str) -> Chat | None:
        """Retrieve a chat with its messages, or None if it does not exist."""

    @abstractmethod
    async def fetch_all_chats(self) -> list[Chat]:
        """Retrieve every chat, most recently updated first."""

    @abstractmethod
    async def delete_chat(self, chat: Chat) -> None:
        """Delete a chat and its messages."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "ChatStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()


def ensure_persistable(message: Message) -> None:
    if not message.is_persistable:
        raise ValueError(f"Message {message.id} is still streaming and cannot be persisted")
