"""OpenAI Chat Completions API transformer.

The canonical format is the OpenAI chat-completions shape, so requests
pass through almost verbatim and responses are re-emitted unchanged.

OpenAI API Reference:
- Request: POST /chat/completions with {model, messages, temperature, max_tokens, ...}
- Messages: [{role, content}]
- Streaming: SSE with data: {"choices": [{"delta": {...}}]} and data: [DONE]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from llmux.gateway.errors import MalformedUpstreamError

from .base import ProviderTransformer, UpstreamRequest, drop_none, parse_json_object, sse_data
from .resolver import ProviderTag
from .types import (
    STREAM_DONE,
    ChatChunk,
    ChatRequest,
    ChatResponse,
    StreamContext,
    StreamItem,
    TokenUsage,
    now_epoch_seconds,
)

if TYPE_CHECKING:
    from llmux.gateway.config import GatewayConfig


def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


@dataclass
class OpenAITransformer(ProviderTransformer):
    """Transforms canonical format to/from OpenAI API format."""

    provider = ProviderTag.OPENAI
    display_name = "OpenAI"

    def to_upstream(self, request: ChatRequest, config: GatewayConfig) -> UpstreamRequest:
        """Convert a canonical request to an OpenAI chat completions call.

        System messages stay inline in ``messages``.
        """
        body = drop_none(
            {
                "model": request.provider_model,
                "messages": [m.to_dict() for m in request.messages],
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "top_p": request.top_p,
                "frequency_penalty": request.frequency_penalty,
                "presence_penalty": request.presence_penalty,
            }
        )
        body["stream"] = request.stream

        return UpstreamRequest(
            provider=self.provider,
            url=config.openai_url,
            body=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.openai_api_key or ''}",
            },
            stream=request.stream,
        )

    def from_upstream(self, data: dict[str, Any], request: ChatRequest) -> ChatResponse:
        """Wrap an OpenAI response; it already has the canonical shape."""
        if "choices" not in data:
            raise MalformedUpstreamError("OpenAI response has no choices")

        choice = _first_choice(data)
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        if not isinstance(message, dict) or not isinstance(usage, dict):
            raise MalformedUpstreamError("OpenAI response has a malformed message or usage")

        try:
            token_usage = TokenUsage(
                prompt_tokens=int(usage.get("prompt_tokens") or 0),
                completion_tokens=int(usage.get("completion_tokens") or 0),
            )
        except (TypeError, ValueError) as e:
            raise MalformedUpstreamError(f"OpenAI usage is not numeric: {usage}") from e

        return ChatResponse(
            id=str(data.get("id") or ""),
            created=int(data.get("created") or now_epoch_seconds()),
            model=str(data.get("model") or request.model),
            content=message.get("content") or "",
            finish_reason=choice.get("finish_reason") or "stop",
            usage=token_usage,
            raw=data,
        )

    def parse_line(self, line: str, context: StreamContext) -> list[StreamItem]:
        """Parse an SSE line; chunks are re-emitted verbatim."""
        data_str = sse_data(line)
        if not data_str:
            return []

        if data_str == "[DONE]":
            return [STREAM_DONE]

        data = parse_json_object(data_str)
        choice = _first_choice(data)
        delta = choice.get("delta") or {}

        return [
            ChatChunk(
                id=str(data.get("id") or context.id),
                created=int(data.get("created") or context.created),
                model=str(data.get("model") or context.model),
                delta=delta.get("content") or "",
                finish_reason=choice.get("finish_reason"),
                raw=data,
            )
        ]
