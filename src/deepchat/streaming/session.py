"""One in-flight streaming completion request.

Hides the HTTP exchange, SSE framing and delta decoding behind a single
async generator of :class:`StreamSnapshot` values.

Usage:
    session = StreamSession(http_client, request)
    async with contextlib.aclosing(session.open()) as snapshots:
        async for snapshot in snapshots:
            content += snapshot.content_delta
    # session.outcome is now COMPLETED or CANCELLED; failures raise StreamError
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable
from typing import Any

import httpx

from .deltas import DeltaDecoder
from .errors import IncompleteStreamError, StreamError, StreamStatusError, StreamTransportError
from .frames import FrameParser
from .models import ChatCompletionRequest, StreamOutcome, StreamSnapshot

logger = logging.getLogger(__name__)

_CANCELLED: Any = object()


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a stream.

    ``cancel()`` is synchronous and may be called from any callback running
    on the event loop; the stream checks the token before every emission and
    races every network wait against it.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()


async def _next_chunk(chunks: AsyncIterator[str]) -> str | None:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class StreamSession:
    """Owns one streaming request and assembles snapshots from its frames.

    Exactly one terminal outcome is recorded. Once the session is completed,
    failed or cancelled, nothing more is emitted even if bytes keep arriving.
    A session can be opened only once.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        request: ChatCompletionRequest,
        token: CancellationToken | None = None,
    ) -> None:
        self._client = client
        self._request = request
        self.token = token or CancellationToken()
        self._parser = FrameParser()
        self._decoder = DeltaDecoder()
        self._accumulated_reasoning = ""
        self._outcome = StreamOutcome.PENDING
        self._opened = False

    @property
    def request(self) -> ChatCompletionRequest:
        return self._request

    @property
    def outcome(self) -> StreamOutcome:
        return self._outcome

    @property
    def completed(self) -> bool:
        """True once a terminal outcome has been recorded."""
        return self._outcome is not StreamOutcome.PENDING

    @property
    def accumulated_reasoning(self) -> str:
        return self._accumulated_reasoning

    @property
    def discarded_frames(self) -> int:
        """Number of malformed frames dropped so far."""
        return self._decoder.discarded

    def cancel(self) -> None:
        """Abort the request. No snapshot is emitted after this returns."""
        self.token.cancel()

    async def open(self) -> AsyncIterator[StreamSnapshot]:
        """Issue the request and yield a snapshot per decoded frame.

        Ends normally on ``[DONE]`` or cancellation.

        Raises:
            StreamError: On transport failure, non-2xx status, or a body that
                ends before ``[DONE]``
            RuntimeError: If the session was already opened
        """
        if self._opened:
            raise RuntimeError("Stream session can only be opened once")
        self._opened = True

        if self.token.cancelled:
            self._finish(StreamOutcome.CANCELLED)
            return

        http_request = self._client.build_request(
            "POST",
            self._request.url,
            json=self._request.payload(),
            headers=self._request.headers(),
        )
        logger.debug(
            "POST %s model=%s messages=%d",
            self._request.url, self._request.model, len(self._request.messages)
        )

        try:
            response = await self._race(self._client.send(http_request, stream=True))
            if response is _CANCELLED:
                self._finish(StreamOutcome.CANCELLED)
                return

            chunks = None
            try:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise StreamStatusError(response.status_code, body)

                chunks = response.aiter_text()
                while True:
                    chunk = await self._race(_next_chunk(chunks))
                    if chunk is _CANCELLED:
                        self._finish(StreamOutcome.CANCELLED)
                        return
                    if chunk is None:
                        break
                    for snapshot in self._snapshots(self._parser.feed(chunk)):
                        if self.token.cancelled:
                            self._finish(StreamOutcome.CANCELLED)
                            return
                        yield snapshot
                    if self._parser.done:
                        self._finish(StreamOutcome.COMPLETED)
                        return

                for snapshot in self._snapshots(self._parser.flush()):
                    if self.token.cancelled:
                        self._finish(StreamOutcome.CANCELLED)
                        return
                    yield snapshot
                if self.token.cancelled:
                    self._finish(StreamOutcome.CANCELLED)
                    return
                if not self._parser.done:
                    raise IncompleteStreamError()
                self._finish(StreamOutcome.COMPLETED)
            finally:
                if chunks is not None:
                    await chunks.aclose()
                await response.aclose()

        except httpx.HTTPError as e:
            self._finish(StreamOutcome.FAILED)
            logger.warning("Stream failed: %s", e)
            raise StreamTransportError(str(e) or type(e).__name__) from e
        except StreamError as e:
            self._finish(StreamOutcome.FAILED)
            logger.warning("Stream failed: %s", e)
            raise

    def _snapshots(self, payloads: Iterable[str]) -> Iterable[StreamSnapshot]:
        for payload in payloads:
            delta = self._decoder.decode(payload)
            if delta is None:
                continue
            if delta.reasoning:
                self._accumulated_reasoning += delta.reasoning
            yield StreamSnapshot(
                content_delta=delta.content or "",
                accumulated_reasoning=self._accumulated_reasoning or None,
                thinking=self._decoder.thinking,
            )

    async def _race(self, awaitable: Awaitable[Any]) -> Any:
        """Await `awaitable` unless the token fires first.

        Returns the sentinel ``_CANCELLED`` when cancellation wins; the losing
        network operation is cancelled and awaited so nothing is left pending.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abandon(task)
            raise
        finally:
            waiter.cancel()

        if self.token.cancelled:
            await self._abandon(task)
            return _CANCELLED
        return task.result()

    @staticmethod
    async def _abandon(task: asyncio.Future) -> None:
        """Cancel a network operation and release whatever it produced."""
        task.cancel()
        outcome = (await asyncio.gather(task, return_exceptions=True))[0]
        if isinstance(outcome, httpx.Response):
            await outcome.aclose()

    def _finish(self, outcome: StreamOutcome) -> None:
        if self._outcome is StreamOutcome.PENDING:
            self._outcome = outcome
            logger.debug("Stream %s (discarded frames: %d)", outcome.value, self._decoder.discarded)
