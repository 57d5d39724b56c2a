"""Shared interface implemented by every provider transformer."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .resolver import ProviderTag
from .types import ChatRequest, ChatResponse, StreamContext, StreamItem

if TYPE_CHECKING:
    from llmux.gateway.config import GatewayConfig

# Headers whose values must never reach logs or debug dumps
SECRET_HEADERS = frozenset({"authorization", "x-api-key", "x-goog-api-key"})
SECRET_PARAMS = frozenset({"key"})


@dataclass(frozen=True)
class UpstreamRequest:
    """Everything the transport needs to call a provider."""

    provider: ProviderTag
    url: str
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    stream: bool = False

    def redacted(self) -> dict[str, Any]:
        """Loggable view with credentials masked."""
        return {
            "provider": self.provider.value,
            "url": self.url,
            "headers": {
                k: ("***" if k.lower() in SECRET_HEADERS else v) for k, v in self.headers.items()
            },
            "params": {k: ("***" if k in SECRET_PARAMS else v) for k, v in self.params.items()},
            "stream": self.stream,
            "body": self.body,
        }


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    """Remove keys whose value is None (unset optional parameters)."""
    return {k: v for k, v in values.items() if v is not None}


def sse_data(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    data = line[5:]
    # A single space after the colon is part of the framing
    if data.startswith(" "):
        data = data[1:]
    return data.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Decode a JSON object, raising ValueError for anything else."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class ProviderTransformer(ABC):
    """Translate canonical requests to one provider and its responses back.

    Implementations are stateless; per-stream state lives in StreamContext.
    """

    provider: ProviderTag
    display_name: str

    @abstractmethod
    def to_upstream(self, request: ChatRequest, config: GatewayConfig) -> UpstreamRequest:
        """Build the provider wire request (URL, headers, body)."""

    @abstractmethod
    def from_upstream(self, data: dict[str, Any], request: ChatRequest) -> ChatResponse:
        """Normalize a buffered provider response.

        Raises:
            MalformedUpstreamError: If the payload cannot be normalized.
        """

    @abstractmethod
    def parse_line(self, line: str, context: StreamContext) -> list[StreamItem]:
        """Decode one complete line of the provider's stream.

        Returns an empty list for lines that carry nothing. Raises
        ValueError for lines that look like events but fail to parse.
        """

    def finish(self, context: StreamContext) -> list[StreamItem]:
        """Items to emit when the byte stream ends without an end marker."""
        return []
