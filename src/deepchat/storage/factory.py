"""Factory for creating chat store backends."""

from typing import Any

from .base import ChatStore


def create_chat_store(
    backend: str = "sqlite",
    **kwargs: Any
) -> ChatStore:
    """Create a chat store backend.

    Args:
        backend: Backend type ("sqlite" or "memory")
        **kwargs: Backend-specific configuration
            For sqlite:
                - path: str | Path (default: ./deepchat.sqlite3)

    Returns:
        ChatStore instance (call ``connect()`` before use)

    Raises:
        ValueError: If backend type is not supported

    Example:
        >>> store = create_chat_store("sqlite", path="~/.deepchat/chats.db")
        >>> await store.connect()
    """
    if backend == "memory":
        from .in_memory import InMemoryChatStore
        return InMemoryChatStore(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteChatStore
        return SQLiteChatStore(**kwargs)

    raise ValueError(
        f"Unsupported chat store backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )
