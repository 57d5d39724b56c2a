"""Anthropic Messages API transformer.

Converts canonical requests to Anthropic Messages API format and parses
Anthropic responses (buffered and SSE) back into canonical types.

Anthropic API Reference:
- Request: POST /v1/messages with {model, max_tokens, system, messages, stream, ...}
- Response: {id, type, role, content: [{type, text}], model, stop_reason, usage}
- Streaming: SSE events (message_start, content_block_start/delta/stop,
  message_delta, message_stop)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from llmux.gateway.errors import MalformedUpstreamError

from .base import ProviderTransformer, UpstreamRequest, drop_none, parse_json_object, sse_data
from .resolver import ProviderTag
from .types import (
    STREAM_DONE,
    ChatRequest,
    ChatResponse,
    StreamContext,
    StreamItem,
    TokenUsage,
    now_epoch_seconds,
)

if TYPE_CHECKING:
    from llmux.gateway.config import GatewayConfig

logger = logging.getLogger(__name__)


@dataclass
class AnthropicTransformer(ProviderTransformer):
    """Transforms canonical format to/from Anthropic Messages API format."""

    provider = ProviderTag.ANTHROPIC
    display_name = "Anthropic"

    def to_upstream(self, request: ChatRequest, config: GatewayConfig) -> UpstreamRequest:
        """Convert a canonical request to an Anthropic Messages API call.

        The system message moves to the top-level ``system`` field since
        Anthropic does not accept it inside ``messages``.
        """
        body = drop_none(
            {
                "model": request.provider_model,
                "max_tokens": (
                    request.max_tokens
                    if request.max_tokens is not None
                    else config.anthropic_default_max_tokens
                ),
                "temperature": request.temperature,
                "top_p": request.top_p,
                "system": request.system_prompt,
                "messages": [m.to_dict() for m in request.conversation],
            }
        )
        body["stream"] = request.stream

        return UpstreamRequest(
            provider=self.provider,
            url=config.anthropic_url,
            body=body,
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.anthropic_api_key or "",
                "anthropic-version": config.anthropic_version,
            },
            stream=request.stream,
        )

    def from_upstream(self, data: dict[str, Any], request: ChatRequest) -> ChatResponse:
        """Convert an Anthropic message response to canonical format."""
        content = data.get("content")
        usage = data.get("usage")
        if not isinstance(content, list) or not isinstance(usage, dict):
            raise MalformedUpstreamError("Anthropic response is missing content or usage")

        text = ""
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text") or ""
                break

        try:
            token_usage = TokenUsage(
                prompt_tokens=int(usage.get("input_tokens") or 0),
                completion_tokens=int(usage.get("output_tokens") or 0),
            )
        except (TypeError, ValueError) as e:
            raise MalformedUpstreamError(f"Anthropic usage is not numeric: {usage}") from e

        return ChatResponse(
            id=str(data.get("id") or ""),
            created=now_epoch_seconds(),
            model=request.model,
            content=text,
            finish_reason=data.get("stop_reason") or "stop",
            usage=token_usage,
        )

    def parse_line(self, line: str, context: StreamContext) -> list[StreamItem]:
        """Parse an SSE line from an Anthropic streaming response.

        Only ``data:`` lines matter; ``event:`` lines repeat the type that
        is also present in the JSON payload.
        """
        data_str = sse_data(line)
        if not data_str or data_str == "[DONE]":
            return []

        event = parse_json_object(data_str)
        event_type = event.get("type")

        if event_type == "message_start":
            message = event.get("message") or {}
            if message.get("id"):
                context.id = message["id"]
            return []

        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            text = delta.get("text")
            if text:
                return [context.chunk(delta=text)]
            return []

        if event_type == "message_stop":
            return [context.terminal_chunk(), STREAM_DONE]

        if event_type == "error":
            error = event.get("error") or {}
            logger.warning(
                "Anthropic stream error event: %s: %s",
                error.get("type", "unknown"),
                error.get("message", ""),
            )
            return []

        return []
