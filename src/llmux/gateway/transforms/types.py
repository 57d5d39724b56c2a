"""Canonical types for the chat-completion gateway.

These types are the provider-agnostic format every transformer speaks.
Serialised forms follow the OpenAI chat-completions shape, which is what
callers of the gateway receive.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

from .resolver import provider_model_id

Role = Literal["system", "user", "assistant"]


def generate_completion_id() -> str:
    """Generate a completion ID in OpenAI format."""
    return f"chatcmpl-{int(time.time() * 1000)}"


def now_epoch_seconds() -> int:
    return int(time.time())


@dataclass(frozen=True)
class ChatMessage:
    """A single message in the conversation."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    """Canonical chat-completion request.

    ``model`` is either ``"<provider>/<model_id>"`` or a bare model id.
    """

    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stream: bool = False

    @property
    def provider_model(self) -> str:
        """Model id as the upstream provider knows it."""
        return provider_model_id(self.model)

    @property
    def system_prompt(self) -> str | None:
        """Content of the first system message, if any."""
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def conversation(self) -> tuple[ChatMessage, ...]:
        """Messages without system-role entries."""
        return tuple(m for m in self.messages if m.role != "system")


@dataclass(frozen=True)
class TokenUsage:
    """Token usage statistics.

    ``total_tokens`` is derived, so it always equals the sum of the parts.
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ChatResponse:
    """Canonical non-streaming response.

    ``raw`` holds the upstream payload when the provider already speaks the
    canonical format; it is re-emitted verbatim by ``to_dict``.
    """

    id: str
    created: int
    model: str
    content: str
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        if self.raw is not None:
            result = dict(self.raw)
            result["usage"] = {**(self.raw.get("usage") or {}), **self.usage.to_dict()}
            return result

        return {
            "id": self.id,
            "object": "chat.completion",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": self.content},
                    "finish_reason": self.finish_reason,
                }
            ],
            "usage": self.usage.to_dict(),
        }


@dataclass(frozen=True)
class ChatChunk:
    """Single incremental unit of a streamed response."""

    id: str
    created: int
    model: str
    delta: str = ""
    finish_reason: str | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        if self.raw is not None:
            return self.raw

        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": {"content": self.delta} if self.delta else {},
                    "finish_reason": self.finish_reason,
                }
            ],
        }


@dataclass(frozen=True)
class StreamDone:
    """Explicit end-of-stream marker."""

    def __repr__(self) -> str:
        return "STREAM_DONE"


STREAM_DONE = StreamDone()

StreamItem = ChatChunk | StreamDone


@dataclass
class StreamContext:
    """Per-stream identity shared by every chunk of one response.

    Request-scoped: created when a stream is opened and discarded with it.
    """

    model: str
    id: str = field(default_factory=generate_completion_id)
    created: int = field(default_factory=now_epoch_seconds)

    def chunk(self, delta: str = "", finish_reason: str | None = None) -> ChatChunk:
        return ChatChunk(
            id=self.id,
            created=self.created,
            model=self.model,
            delta=delta,
            finish_reason=finish_reason,
        )

    def terminal_chunk(self) -> ChatChunk:
        return self.chunk(finish_reason="stop")
