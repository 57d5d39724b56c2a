"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from llmux.gateway.clients.transport import TransportError
from llmux.gateway.config import GatewayConfig
from llmux.gateway.transforms.types import ChatMessage, ChatRequest

ANTHROPIC_URL = "https://api.test.anthropic.com/v1/messages"
OPENAI_URL = "https://api.test.openai.com/v1/chat/completions"
GOOGLE_URL = "https://api.test.google.com/v1beta/models"


class StubByteStream:
    """Replays fixed fragments; optionally fails after them."""

    def __init__(self, fragments: list[bytes], fail_after: bool = False):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.reads = 0
        self.close_calls = 0

    async def __aiter__(self):
        for fragment in self.fragments:
            self.reads += 1
            yield fragment
        if self.fail_after:
            raise TransportError("connection reset by peer")

    async def close(self) -> None:
        self.close_calls += 1

    @property
    def closed(self) -> bool:
        return self.close_calls > 0


class StubTransport:
    """Call-counting transport returning canned results.

    Set ``response`` for buffered calls, ``stream`` for streaming calls, or
    ``error`` to raise instead.
    """

    def __init__(self) -> None:
        self.response: dict[str, Any] = {}
        self.stream: StubByteStream = StubByteStream([])
        self.error: Exception | None = None
        self.calls: list[Any] = []

    async def send(self, upstream, trace_id):
        self.calls.append(upstream)
        if self.error is not None:
            raise self.error
        return self.response

    async def open_stream(self, upstream, trace_id):
        self.calls.append(upstream)
        if self.error is not None:
            raise self.error
        return self.stream


@pytest.fixture
def config():
    """Gateway config with every provider configured against test URLs."""
    return GatewayConfig(
        port=0,
        anthropic_api_key="test-anthropic-key",
        openai_api_key="test-openai-key",
        google_api_key="test-google-key",
        anthropic_url=ANTHROPIC_URL,
        openai_url=OPENAI_URL,
        google_url=GOOGLE_URL,
    )


@pytest.fixture
def stub_transport():
    return StubTransport()


@pytest.fixture
def byte_stream():
    """Factory for StubByteStream instances."""
    return StubByteStream


@pytest.fixture
def make_request():
    """Build a ChatRequest from (role, content) pairs."""

    def _make(model: str, *messages: tuple[str, str], **kwargs: Any) -> ChatRequest:
        if not messages:
            messages = (("user", "Hello!"),)
        return ChatRequest(
            model=model,
            messages=tuple(ChatMessage(role=role, content=content) for role, content in messages),
            **kwargs,
        )

    return _make
