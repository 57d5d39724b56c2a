"""Provider resolution from namespaced model identifiers.

Model identifiers look like ``"anthropic/claude-3-5-sonnet-20241022"``.
The prefix before the first ``/`` selects the provider; anything that
is not recognised (including a bare id with no ``/``) goes to OpenAI.
"""

from __future__ import annotations

from enum import Enum


class ProviderTag(str, Enum):
    """Upstream providers the gateway can talk to."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


# Prefix aliases -> provider
PROVIDER_ALIASES: dict[str, ProviderTag] = {
    "anthropic": ProviderTag.ANTHROPIC,
    "claude": ProviderTag.ANTHROPIC,
    "openai": ProviderTag.OPENAI,
    "google": ProviderTag.GOOGLE,
    "gemini": ProviderTag.GOOGLE,
}

DEFAULT_PROVIDER = ProviderTag.OPENAI


def resolve_provider(model: str) -> ProviderTag:
    """Map a model identifier to its provider. Never fails."""
    if "/" not in model:
        return DEFAULT_PROVIDER
    prefix = model.split("/", 1)[0].lower()
    return PROVIDER_ALIASES.get(prefix, DEFAULT_PROVIDER)


def provider_model_id(model: str) -> str:
    """Strip the provider prefix: everything after the first ``/``."""
    if "/" not in model:
        return model
    return model.split("/", 1)[1]
