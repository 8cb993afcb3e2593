"""Data models for chats and messages.

These models define the structure of a conversation independent of the
storage backend used.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

TITLE_LENGTH = 20
DEFAULT_TITLE = "New chat"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    """Lifecycle of a message.

    ``streaming`` only exists in memory while a reply is being received; it is
    never written to a store.
    """

    SENDING = "sending"
    STREAMING = "streaming"
    SUCCESS = "success"
    FAILED = "failed"


class Message(BaseModel):
    """A single message in a chat.

    Mutated in place while a reply streams in, then frozen once its status
    is terminal.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str = ""
    reasoning_content: str | None = Field(
        default=None,
        description="Reasoning text produced before the answer (assistant only)"
    )
    role: MessageRole
    timestamp: datetime = Field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.SUCCESS

    @model_validator(mode="after")
    def _reasoning_only_for_assistant(self) -> "Message":
        if self.role is not MessageRole.ASSISTANT and self.reasoning_content is not None:
            raise ValueError("Only assistant messages may carry reasoning content")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (MessageStatus.SUCCESS, MessageStatus.FAILED)

    @property
    def is_persistable(self) -> bool:
        return self.status is not MessageStatus.STREAMING


class Chat(BaseModel):
    """A conversation: metadata plus its messages in creation order."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    messages: list[Message] = Field(default_factory=list)

    @staticmethod
    def derive_title(text: str) -> str:
        """Title for a chat whose first user message is `text`.

        The first 20 characters, trimmed of surrounding whitespace.
        """
        return text[:TITLE_LENGTH].strip() or DEFAULT_TITLE

    @property
    def is_new(self) -> bool:
        """True until the first message has been added."""
        return not self.messages

    @property
    def has_assistant_reply(self) -> bool:
        return any(
            m.role is MessageRole.ASSISTANT and m.status is MessageStatus.SUCCESS
            for m in self.messages
        )

    def touch(self) -> None:
        """Bump `updated_at` to now without ever moving it backwards."""
        now = utcnow()
        if now > self.updated_at:
            self.updated_at = now

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None
