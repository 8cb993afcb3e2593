"""Chat persistence for deepchat.

Provides durable storage of chats and their messages.
"""

from .base import ChatStore
from .errors import (
    DeleteError,
    InsertError,
    PersistenceError,
    PersistenceErrorKind,
    QueryError,
    StoreConnectionError,
    UpdateError,
)
from .factory import create_chat_store
from .models import Chat, Message, MessageRole, MessageStatus

__all__ = [
    "Chat",
    "ChatStore",
    "DeleteError",
    "InsertError",
    "Message",
    "MessageRole",
    "MessageStatus",
    "PersistenceError",
    "PersistenceErrorKind",
    "QueryError",
    "StoreConnectionError",
    "UpdateError",
    "create_chat_store",
]
