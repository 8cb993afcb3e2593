"""Streaming chat-completion transport: SSE framing, delta decoding, sessions."""

from .client import DeepSeekClient
from .deltas import DecodedDelta, DeltaDecoder
from .errors import IncompleteStreamError, StreamError, StreamStatusError, StreamTransportError
from .frames import FrameParser, LineBuffer
from .models import ChatCompletionRequest, ChatMessage, StreamOutcome, StreamSnapshot
from .session import CancellationToken, StreamSession

__all__ = [
    "CancellationToken",
    "ChatCompletionRequest",
    "ChatMessage",
    "DecodedDelta",
    "DeepSeekClient",
    "DeltaDecoder",
    "FrameParser",
    "IncompleteStreamError",
    "LineBuffer",
    "StreamError",
    "StreamOutcome",
    "StreamSession",
    "StreamSnapshot",
    "StreamStatusError",
    "StreamTransportError",
]
