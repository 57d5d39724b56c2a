"""Google Gemini generateContent API transformer.

Google API Reference:
- Request: POST models/{model}:generateContent (or :streamGenerateContent)
  with {contents: [{role, parts: [{text}]}], systemInstruction, generationConfig}
- Roles: "user" and "model" only; the system prompt goes in systemInstruction
- Response: {candidates: [{content: {parts: [{text}]}}], usageMetadata}
- Streaming: one JSON object per line, no SSE framing, no end marker
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .base import ProviderTransformer, UpstreamRequest, drop_none, parse_json_object
from .resolver import ProviderTag
from .types import (
    STREAM_DONE,
    ChatRequest,
    ChatResponse,
    StreamContext,
    StreamItem,
    TokenUsage,
    generate_completion_id,
    now_epoch_seconds,
)

if TYPE_CHECKING:
    from llmux.gateway.config import GatewayConfig

# Canonical role -> Google content role
ROLE_MAP = {
    "user": "user",
    "assistant": "model",
    "system": "user",
}


def first_candidate_text(data: dict[str, Any]) -> str:
    """candidates[0].content.parts[0].text, or "" if any link is missing."""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    content = candidate.get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return ""
    return parts[0].get("text") or ""


def _strip_array_framing(line: str) -> str:
    """Tolerate the JSON-array form of the stream ("[{...}", ",{...}", "]")."""
    line = line.strip()
    if line.startswith(("[", ",")):
        line = line[1:].lstrip()
    if line.endswith(("]", ",")):
        line = line[:-1].rstrip()
    return line


@dataclass
class GoogleTransformer(ProviderTransformer):
    """Transforms canonical format to/from Google Gemini API format."""

    provider = ProviderTag.GOOGLE
    display_name = "Google"

    def to_upstream(self, request: ChatRequest, config: GatewayConfig) -> UpstreamRequest:
        """Convert a canonical request to a Gemini generateContent call.

        The endpoint embeds the model id and switches between
        ``generateContent`` and ``streamGenerateContent``.
        """
        body: dict[str, Any] = {
            "contents": [
                {"role": ROLE_MAP[m.role], "parts": [{"text": m.content}]}
                for m in request.conversation
            ],
        }

        generation_config = drop_none(
            {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
                "topP": request.top_p,
            }
        )
        if generation_config:
            body["generationConfig"] = generation_config

        system = request.system_prompt
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        method = "streamGenerateContent" if request.stream else "generateContent"
        url = f"{config.google_url.rstrip('/')}/{request.provider_model}:{method}"

        headers = {"Content-Type": "application/json"}
        params: dict[str, str] = {}
        if config.google_key_in_header:
            headers["x-goog-api-key"] = config.google_api_key or ""
        else:
            params["key"] = config.google_api_key or ""

        return UpstreamRequest(
            provider=self.provider,
            url=url,
            body=body,
            headers=headers,
            params=params,
            stream=request.stream,
        )

    def from_upstream(self, data: dict[str, Any], request: ChatRequest) -> ChatResponse:
        """Convert a Gemini response to canonical format.

        The finish reason is always reported as "stop".
        """
        metadata = data.get("usageMetadata")
        if not isinstance(metadata, dict):
            metadata = {}

        return ChatResponse(
            id=generate_completion_id(),
            created=now_epoch_seconds(),
            model=request.model,
            content=first_candidate_text(data),
            finish_reason="stop",
            usage=TokenUsage(
                prompt_tokens=int(metadata.get("promptTokenCount") or 0),
                completion_tokens=int(metadata.get("candidatesTokenCount") or 0),
            ),
        )

    def parse_line(self, line: str, context: StreamContext) -> list[StreamItem]:
        """Parse one newline-delimited JSON object from the stream."""
        line = _strip_array_framing(line)
        if not line:
            return []

        data = parse_json_object(line)
        text = first_candidate_text(data)
        if not text:
            return []
        return [context.chunk(delta=text)]

    def finish(self, context: StreamContext) -> list[StreamItem]:
        """Google sends no terminal event; synthesize one at end of input."""
        return [context.terminal_chunk(), STREAM_DONE]
