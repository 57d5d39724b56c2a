"""Pydantic models for inbound chat-completion request validation.

These models validate requests before any provider is involved. They
check structure only; value ranges (temperature, max_tokens, ...) are left
to the upstream provider, whose rejection comes back as an api_error.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .types import ChatMessage, ChatRequest


class Message(BaseModel):
    """A message in the conversation."""

    model_config = ConfigDict(extra="allow")

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Canonical chat-completion request body."""

    model_config = ConfigDict(extra="allow")

    model: str
    messages: list[Message]
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stream: bool = False

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Validate model is not blank."""
        if not v or not v.strip():
            raise ValueError("Model is required")
        return v.strip()

    @field_validator("messages")
    @classmethod
    def validate_messages(cls, v: list[Message]) -> list[Message]:
        """Validate messages list is not empty."""
        if not v:
            raise ValueError("Messages array is required and must not be empty")
        return v

    def to_canonical(self) -> ChatRequest:
        return ChatRequest(
            model=self.model,
            messages=tuple(ChatMessage(role=m.role, content=m.content) for m in self.messages),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
            stream=self.stream,
        )


def _format_errors(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        # Custom validators report "Value error, <message>"
        message = message.removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def parse_request(body: Any) -> ChatRequest:
    """Validate a request body and convert it to a ChatRequest.

    Raises:
        ValueError: With all validation messages joined by "; ".
    """
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")

    try:
        parsed = ChatCompletionRequest.model_validate(body)
    except ValidationError as e:
        raise ValueError("; ".join(_format_errors(e))) from e
    return parsed.to_canonical()
