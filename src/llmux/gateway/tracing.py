"""Request tracing for the gateway server.

Provides human-readable trace IDs and optional debug data saving.

Debug files are saved to: {debug_dir}/logs/{session_id}/{trace_id}/
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class RequestTracer:
    """Handles request tracing and debug data saving.

    Holds no per-request state: trace IDs are derived from the clock, a
    random suffix and the request itself.

    Example:
        tracer = RequestTracer(debug_dir="/tmp/llmux-debug")
        trace_id = tracer.generate_trace_id(body)
        tracer.save_debug(trace_id, "1_request.json", body)
    """

    def __init__(self, debug_dir: str | Path | None = None):
        """Initialize tracer with optional debug directory.

        Args:
            debug_dir: Directory for debug files (None disables them).
        """
        self._debug_dir_config = debug_dir
        self._session_id = time.strftime("%Y-%m-%d_%H-%M-%S")

    @property
    def debug_dir(self) -> Path | None:
        """Debug directory for this server session, or None if disabled."""
        if not self._debug_dir_config:
            return None
        return Path(self._debug_dir_config) / "logs" / self._session_id

    def generate_trace_id(self, body: Any) -> str:
        """Generate a human-readable trace ID with context.

        Format: {hhmmss}_{rand}_{num_messages}msgs_{context}
        Example: 031333_a1b2c3_1msgs_Please_write_a
        """
        timestamp = time.strftime("%H%M%S")
        suffix = secrets.token_hex(3)

        msgs = body.get("messages") if isinstance(body, dict) else None
        if not isinstance(msgs, list):
            msgs = []

        # Use the last user message with text content
        context = "empty"
        for m in reversed(msgs):
            if not isinstance(m, dict) or m.get("role") != "user":
                continue
            content = m.get("content")
            if isinstance(content, str) and content.strip():
                words = content.split()[:3]
                context = "_".join(w[:8] for w in words if w and not w.startswith("<"))[:20]
                break

        # Clean context for filesystem
        context = "".join(c if c.isalnum() or c == "_" else "" for c in context) or "request"

        return f"{timestamp}_{suffix}_{len(msgs)}msgs_{context}"

    def save_debug(self, trace_id: str, filename: str, data: Any) -> None:
        """Save debug data to JSON file if debug_dir is configured."""
        if not self.debug_dir:
            return

        try:
            trace_path = self.debug_dir / trace_id
            trace_path.mkdir(parents=True, exist_ok=True)

            filepath = trace_path / filename
            with open(filepath, "w") as f:
                json.dump(data, f, indent=2, default=str)
            logger.debug("[%s] Saved debug file: %s", trace_id, filepath)
        except OSError as e:
            logger.warning("[%s] Failed to save debug file %s: %s", trace_id, filename, e)
