class StreamError(Exception):
    """Base class for stream failures.

    The underlying transport exception, when there is one, is chained as
    ``__cause__``.
    """

    def is_retryable(self) -> bool:
        """Override in subclasses to control retry behavior."""
        return False


class StreamTransportError(StreamError):
    """Connection refused or dropped, or a timeout (retryable)."""

    def __init__(self, message: str):
        super().__init__(f"Transport error: {message}")

    def is_retryable(self) -> bool:
        return True


class StreamStatusError(StreamError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        message = f"HTTP {status_code}"
        if body:
            message += f": {body[:500]}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def is_retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class IncompleteStreamError(StreamError):
    """The response body ended before the [DONE] sentinel (retryable)."""

    def __init__(self) -> None:
        super().__init__("Stream ended before [DONE]")

    def is_retryable(self) -> bool:
        return True
