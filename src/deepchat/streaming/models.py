from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

COMPLETIONS_PATH = "/v1/chat/completions"


class ChatMessage(BaseModel):
    """A message as sent to the completion endpoint."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(description="Role of the message sender")
    content: str = Field(description="Content of the message")


class ChatCompletionRequest(BaseModel):
    """Everything needed to issue one streaming completion request.

    Built from a settings snapshot, so later settings changes never affect a
    request that is already in flight.
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(description="API base URL, without the completions path")
    api_key: SecretStr = Field(description="Bearer token for the API")
    model: str = Field(description="Model identifier")
    messages: list[ChatMessage] = Field(description="History followed by the current turn")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    frequency_penalty: float = 0
    presence_penalty: float = 0

    @property
    def url(self) -> str:
        return self.endpoint.rstrip("/") + COMPLETIONS_PATH

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {self.api_key.get_secret_value()}",
        }

    def payload(self) -> dict[str, Any]:
        """JSON body of the request."""
        return {
            "model": self.model,
            "messages": [message.model_dump() for message in self.messages],
            "stream": True,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }


class StreamSnapshot(BaseModel):
    """Result of one decoded frame.

    Content is incremental and must be appended by the consumer; reasoning is
    the full text accumulated so far and replaces the previous value.
    """

    model_config = ConfigDict(frozen=True)

    content_delta: str = ""
    accumulated_reasoning: str | None = None
    thinking: bool = Field(
        default=False,
        description="Last reasoning_flag seen on the wire (informational only)"
    )


class StreamOutcome(str, Enum):
    """Terminal state of a stream session."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
