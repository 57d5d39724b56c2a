"""Gateway configuration.

One immutable ``GatewayConfig`` is built at startup and handed to the
dispatcher and server. Provider credentials are read only through it.

Values resolve with priority: explicit argument > environment > YAML file
> default.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from llmux.gateway.transforms.resolver import ProviderTag

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
GOOGLE_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# Field name -> environment variable
ENV_VARS = {
    "host": "LLMUX_HOST",
    "port": "LLMUX_PORT",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
    "google_api_key": "GOOGLE_API_KEY",
    "anthropic_url": "LLMUX_ANTHROPIC_URL",
    "openai_url": "LLMUX_OPENAI_URL",
    "google_url": "LLMUX_GOOGLE_URL",
    "debug_dir": "LLMUX_DEBUG_DIR",
}

CONFIG_ENV_VAR = "LLMUX_CONFIG"


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration for the gateway server and its upstream calls."""

    host: str = "127.0.0.1"
    port: int = 3456

    # Provider credentials
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    google_api_key: str | None = None

    # Provider endpoints
    anthropic_url: str = ANTHROPIC_API_URL
    openai_url: str = OPENAI_API_URL
    google_url: str = GOOGLE_API_URL
    anthropic_version: str = "2023-06-01"
    anthropic_default_max_tokens: int = 1024
    google_key_in_header: bool = False  # x-goog-api-key header instead of ?key=

    # Upstream client configuration
    connect_timeout: float = 10.0
    read_timeout: float = 300.0

    # Request limits
    max_body_size: int = 10 * 1024 * 1024  # 10MB

    # Debug: save raw requests/responses to files
    debug_dir: str | None = None

    def api_key_for(self, provider: ProviderTag) -> str | None:
        """Return the configured credential for a provider (None if unset)."""
        key = {
            ProviderTag.ANTHROPIC: self.anthropic_api_key,
            ProviderTag.OPENAI: self.openai_api_key,
            ProviderTag.GOOGLE: self.google_api_key,
        }[provider]
        return key or None

    def configured_providers(self) -> dict[str, bool]:
        return {tag.value: self.api_key_for(tag) is not None for tag in ProviderTag}


def load_config_file(config_file: str | Path | None) -> dict[str, Any]:
    """Load a YAML config file, returning {} when absent.

    The path comes from the argument or ``LLMUX_CONFIG``.
    """
    config_path = config_file or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return {}

    import yaml

    path = Path(config_path)
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _coerce(name: str, value: Any) -> Any:
    """Convert env/file strings to the field's type."""
    default = getattr(GatewayConfig, name, None)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def load_config(
    config_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> GatewayConfig:
    """Build a GatewayConfig from arguments, environment and YAML file.

    Args:
        config_file: Optional YAML file path (falls back to LLMUX_CONFIG).
        env: Environment mapping (defaults to os.environ).
        **overrides: Explicit field values; None means "not given".

    Returns:
        Immutable GatewayConfig.
    """
    env = os.environ if env is None else env
    file_config = load_config_file(config_file)

    known = {f.name for f in fields(GatewayConfig)}
    unknown = set(file_config) - known
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

    values: dict[str, Any] = {}
    for name in known:
        arg = overrides.get(name)
        if arg is not None:
            values[name] = arg
            continue
        env_key = ENV_VARS.get(name)
        env_val = env.get(env_key) if env_key else None
        if env_val:
            values[name] = _coerce(name, env_val)
            continue
        file_val = file_config.get(name)
        if file_val is not None and file_val != "":
            values[name] = _coerce(name, file_val)

    return GatewayConfig(**values)
