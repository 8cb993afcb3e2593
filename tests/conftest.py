"""Pytest configuration and shared fixtures."""
import asyncio
import json
import os
from collections.abc import Callable

import httpx
import pytest

from deepchat.config import Settings, StaticSettings
from deepchat.streaming import DeepSeekClient


class RecordingStream(httpx.AsyncByteStream):
    """Response body that yields fixed chunks and records how it was consumed.

    After the chunks it either raises `error`, blocks forever (`hang`), or
    ends.
    """

    def __init__(
        self,
        chunks: list[str | bytes],
        error: Exception | None = None,
        hang: bool = False,
    ):
        self.chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self.error = error
        self.hang = hang
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class FakeAPI:
    """Stands in for the completion endpoint behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.streams: list[RecordingStream] = []
        self._responses: list[Callable[[], httpx.Response]] = []

    def reply(self, chunks: list[str | bytes], error: Exception | None = None, hang: bool = False) -> RecordingStream:
        """Queue a 200 event-stream response."""
        stream = RecordingStream(chunks, error=error, hang=hang)
        self._responses.append(lambda: httpx.Response(
            200, headers={"content-type": "text/event-stream"}, stream=stream
        ))
        self.streams.append(stream)
        return stream

    def reply_status(self, status_code: int, body: dict | None = None) -> None:
        self._responses.append(lambda: httpx.Response(status_code, json=body or {}))

    def fail(self, error: Exception) -> None:
        def raise_error():
            raise error
        self._responses.append(raise_error)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responses.pop(0)()


def frame(**delta) -> str:
    """One SSE event carrying `delta` in choices[0]."""
    return f"data: {json.dumps({'choices': [{'index': 0, 'delta': delta}]}, ensure_ascii=False)}\n\n"


DONE = "data: [DONE]\n\n"


@pytest.fixture
def sse_frame():
    return frame


@pytest.fixture
def done_frame():
    return DONE


@pytest.fixture
def recording_stream():
    return RecordingStream


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
async def client(fake_api):
    """DeepSeekClient wired to the fake API."""
    client = DeepSeekClient(transport=httpx.MockTransport(fake_api.handler))
    yield client
    await client.close()


@pytest.fixture
def settings():
    return Settings(
        api_endpoint="https://api.example.com",
        api_key="sk-test",
        chat_model="deepseek-chat",
        reasoner_model="deepseek-reasoner",
    )


@pytest.fixture
def settings_provider(settings):
    return StaticSettings(settings)


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "deepseek": os.getenv("DEEPSEEK_API_KEY"),
    }
