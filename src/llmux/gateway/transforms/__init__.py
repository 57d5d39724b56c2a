"""Provider transformers for format conversion.

This module provides transformers for converting between the canonical
chat-completion format and each upstream provider's wire format, plus the
frame decoder that turns provider streams into canonical chunks.
"""

from .anthropic import AnthropicTransformer
from .base import ProviderTransformer, UpstreamRequest
from .framing import FrameDecoder, LineBuffer, strip_chunk_artifacts
from .google import GoogleTransformer
from .openai import OpenAITransformer
from .resolver import ProviderTag, provider_model_id, resolve_provider
from .types import (
    STREAM_DONE,
    ChatChunk,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    StreamContext,
    StreamDone,
    StreamItem,
    TokenUsage,
)
from .validation import ChatCompletionRequest, parse_request


def default_transformers() -> dict[ProviderTag, ProviderTransformer]:
    """One transformer per provider tag."""
    return {
        ProviderTag.ANTHROPIC: AnthropicTransformer(),
        ProviderTag.OPENAI: OpenAITransformer(),
        ProviderTag.GOOGLE: GoogleTransformer(),
    }


__all__ = [
    # Transformers
    "AnthropicTransformer",
    "GoogleTransformer",
    "OpenAITransformer",
    "ProviderTransformer",
    "UpstreamRequest",
    "default_transformers",
    # Resolution
    "ProviderTag",
    "provider_model_id",
    "resolve_provider",
    # Framing
    "FrameDecoder",
    "LineBuffer",
    "strip_chunk_artifacts",
    # Types
    "STREAM_DONE",
    "ChatChunk",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "StreamContext",
    "StreamDone",
    "StreamItem",
    "TokenUsage",
    # Validation
    "ChatCompletionRequest",
    "parse_request",
]
