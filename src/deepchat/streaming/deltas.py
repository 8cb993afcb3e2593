"""Decoding of chat-completion chunk payloads.

Hides the JSON shape of a streamed chunk. Only ``choices[0].delta`` is read;
every field in it is optional, and anything that does not fit the expected
shape is discarded instead of failing the stream.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class ChoiceDelta(BaseModel):
    """The ``delta`` object of a streamed choice."""

    model_config = ConfigDict(extra="ignore")

    content: str | None = None
    reasoning_content: str | None = None
    reasoning_flag: bool | None = None


class StreamChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    delta: ChoiceDelta


class ChunkPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: list[Any] = []


class DecodedDelta(BaseModel):
    """Text fragments carried by one frame."""

    model_config = ConfigDict(frozen=True)

    content: str | None = None
    reasoning: str | None = None


class DeltaDecoder:
    """Turns data-line payloads into content and reasoning fragments.

    The ``reasoning_flag`` field only updates :attr:`thinking`; it never
    changes which fragments are returned.
    """

    def __init__(self) -> None:
        self.thinking = False
        self.discarded = 0

    def decode(self, payload: str) -> DecodedDelta | None:
        """Decode one payload.

        Args:
            payload: Text following ``data:`` on an SSE line

        Returns:
            The fragments in the frame, or None when the frame is malformed or
            carries no text
        """
        try:
            chunk = ChunkPayload.model_validate_json(payload)
            if not chunk.choices:
                return self._discard(payload, "no choices")
            choice = StreamChoice.model_validate(chunk.choices[0])
        except ValidationError as e:
            return self._discard(payload, f"{e.error_count()} validation error(s)")

        delta = choice.delta
        if delta.reasoning_flag is not None:
            self.thinking = delta.reasoning_flag

        if not delta.content and not delta.reasoning_content:
            return None

        return DecodedDelta(
            content=delta.content or None,
            reasoning=delta.reasoning_content or None,
        )

    def _discard(self, payload: str, reason: str) -> None:
        self.discarded += 1
        logger.debug("Discarding frame (%s): %.200s", reason, payload)
        return None
