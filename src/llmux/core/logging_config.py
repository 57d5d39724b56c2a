"""Logging setup for llmux.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where the records go and how they look. Call
``configure_logging`` once at startup (the CLI does).

Environment Variables:
    LLMUX_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    LLMUX_LOG_FORMAT: Output format ("text" or "json")
    LLMUX_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

LogFormat = Literal["text", "json"]

TEXT_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.server", "aiohttp.client")

# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...", "level": "INFO", "logger": "llmux.gateway.server",
     "message": "[031333_a1b2c3_1msgs_Hi] Incoming request", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def _make_formatter(format: LogFormat) -> logging.Formatter:
    if format == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def configure_logging(
    level: str | None = None,
    format: LogFormat | None = None,
    file_path: str | None = None,
    quiet_third_party: bool = True,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Subsequent calls are ignored unless force=True.

    Args:
        level: Log level. Defaults to LLMUX_LOG_LEVEL or "INFO".
        format: "text" or "json". Defaults to LLMUX_LOG_FORMAT or "text".
        file_path: Also log to this file. Defaults to LLMUX_LOG_FILE.
        quiet_third_party: Lower aiohttp's loggers to WARNING.
        force: Reconfigure even if already configured.

    Raises:
        ValueError: If the level or format is not recognised.
    """
    global _configured
    if _configured and not force:
        return

    level = (level or os.environ.get("LLMUX_LOG_LEVEL") or "INFO").upper()
    format = format or os.environ.get("LLMUX_LOG_FORMAT") or "text"  # type: ignore[assignment]
    file_path = file_path or os.environ.get("LLMUX_LOG_FILE")

    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")
    if format not in ("text", "json"):
        raise ValueError(f"Unknown log format: {format} (expected 'text' or 'json')")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = _make_formatter(format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if quiet_third_party:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
