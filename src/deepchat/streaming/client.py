from typing import Any

import httpx

from .models import ChatCompletionRequest
from .session import CancellationToken, StreamSession

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class DeepSeekClient:
    """Client for the DeepSeek (OpenAI-compatible) streaming completion API.

    Hidden design decisions:
    - HTTP connection pooling and timeouts
    - How a request becomes a stream session

    Supports async context manager protocol for proper resource cleanup:
        async with DeepSeekClient() as client:
            session = client.open_stream(request)
        # Connection pool closed
    """

    def __init__(
        self,
        timeout: httpx.Timeout | float | None = DEFAULT_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize the client.

        Args:
            timeout: Transport timeout applied to connect and each read
            **client_kwargs: Additional kwargs for httpx.AsyncClient
                (e.g. ``transport`` for tests, ``proxy``)
        """
        self._client = httpx.AsyncClient(timeout=timeout, **client_kwargs)

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    def open_stream(
        self,
        request: ChatCompletionRequest,
        token: CancellationToken | None = None,
    ) -> StreamSession:
        """Create a stream session for `request`.

        Nothing is sent until the session's ``open()`` generator is iterated.
        """
        return StreamSession(self._client, request, token=token)

    async def close(self) -> None:
        """Close the connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> "DeepSeekClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
