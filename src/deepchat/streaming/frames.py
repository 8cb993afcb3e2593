"""Server-sent event framing.

Hides how a chunked text stream is cut into lines and which of those lines
carry chat-completion payloads. Chunk boundaries from the transport are
arbitrary; nothing here assumes they line up with line boundaries.
"""

from collections.abc import Iterator

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class LineBuffer:
    """Reassembles complete lines from arbitrarily split text chunks.

    The trailing piece of every chunk is kept as a residual until the next
    newline arrives, since it may be an incomplete line.
    """

    def __init__(self) -> None:
        self._residual = ""

    @property
    def residual(self) -> str:
        """Text received after the last newline."""
        return self._residual

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return every line it completes.

        Args:
            chunk: Next piece of text from the transport

        Returns:
            Complete lines, without their newline terminators
        """
        pieces = (self._residual + chunk).split("\n")
        self._residual = pieces.pop()
        return [piece.removesuffix("\r") for piece in pieces]

    def flush(self) -> str | None:
        """Return the unterminated trailing line at end of input, if any."""
        residual, self._residual = self._residual, ""
        residual = residual.removesuffix("\r")
        return residual or None


class FrameParser:
    """Extracts `data:` payloads from an SSE text stream.

    Comment lines (heartbeats such as ``: keep-alive``), other SSE fields and
    blank separators are discarded. The ``[DONE]`` sentinel ends the stream:
    once seen, every later chunk is ignored.

    The parser never raises; unrecognized input is simply dropped.
    """

    def __init__(self) -> None:
        self._lines = LineBuffer()
        self._done = False

    @property
    def done(self) -> bool:
        """True once the ``[DONE]`` sentinel has been seen."""
        return self._done

    def feed(self, chunk: str) -> Iterator[str]:
        """Parse a chunk, yielding the payload of each complete data line.

        Args:
            chunk: Next piece of text from the transport

        Yields:
            JSON payload strings with the ``data:`` prefix removed
        """
        if self._done:
            return
        for line in self._lines.feed(chunk):
            payload = self._payload(line)
            if payload is not None:
                yield payload
            if self._done:
                return

    def flush(self) -> Iterator[str]:
        """Parse the trailing line left over when the input ends."""
        if self._done:
            return
        line = self._lines.flush()
        if line is not None:
            payload = self._payload(line)
            if payload is not None:
                yield payload

    def _payload(self, line: str) -> str | None:
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == DONE_SENTINEL:
            self._done = True
            return None
        return payload
