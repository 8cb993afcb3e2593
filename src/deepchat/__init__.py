"""
Deepchat: a streaming chat client for DeepSeek and other OpenAI-compatible APIs.

Replies are assembled incrementally from server-sent events, including the
reasoning side channel, and conversations are persisted per chat.
"""

__version__ = "0.1.0"

from .config import ConfigurationError, Settings, SettingsProvider, SettingsStore, StaticSettings
from .conversation import ConversationEngine, Turn, TurnInProgressError, TurnState
from .storage import (
    Chat,
    ChatStore,
    Message,
    MessageRole,
    MessageStatus,
    PersistenceError,
    create_chat_store,
)
from .streaming import CancellationToken, DeepSeekClient, StreamError, StreamSnapshot

__all__ = [
    "CancellationToken",
    "Chat",
    "ChatStore",
    "ConfigurationError",
    "ConversationEngine",
    "DeepSeekClient",
    "Message",
    "MessageRole",
    "MessageStatus",
    "PersistenceError",
    "Settings",
    "SettingsProvider",
    "SettingsStore",
    "StaticSettings",
    "StreamError",
    "StreamSnapshot",
    "Turn",
    "TurnInProgressError",
    "TurnState",
    "create_chat_store",
]
