"""Stream frame decoding.

Turns raw upstream bytes, arriving in arbitrarily sized network fragments,
into canonical stream items. Provider event boundaries never line up with
network boundaries, so complete lines are extracted from a growing buffer
and the trailing partial line is held back until more bytes arrive.

Also hosts the cleanup for proof-attesting transports, whose buffered
bodies still carry chunked transfer-encoding framing.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass, field

from .base import ProviderTransformer
from .types import STREAM_DONE, StreamContext, StreamItem

logger = logging.getLogger(__name__)


class LineBuffer:
    """Accumulates text and yields complete lines.

    Bytes go through an incremental UTF-8 decoder so a multi-byte
    character split across two fragments is decoded intact.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes | str) -> list[str]:
        """Append a fragment and return every line it completed."""
        if isinstance(data, bytes):
            data = self._decoder.decode(data)
        self._buffer += data

        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the held-back partial line at end of input."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        remainder = remainder.rstrip("\r")
        return [remainder] if remainder else []

    @property
    def pending(self) -> str:
        """Text received but not yet split into a complete line."""
        return self._buffer


@dataclass
class FrameDecoder:
    """Decodes one provider stream into canonical stream items.

    ``feed`` is called for every network fragment and ``close`` once at
    end of input. Nothing is emitted after the end marker.
    """

    transformer: ProviderTransformer
    context: StreamContext
    trace_id: str = ""
    _lines: LineBuffer = field(default_factory=LineBuffer)
    _finished: bool = False
    _dropped: int = 0

    @property
    def finished(self) -> bool:
        """True once the end-of-stream marker has been emitted."""
        return self._finished

    @property
    def dropped(self) -> int:
        """Number of lines skipped because they failed to parse."""
        return self._dropped

    def feed(self, data: bytes | str) -> list[StreamItem]:
        if self._finished:
            return []
        return self._decode_lines(self._lines.feed(data))

    def close(self) -> list[StreamItem]:
        """Flush the partial line and let the provider close the stream."""
        if self._finished:
            return []

        items = self._decode_lines(self._lines.flush())
        if self._finished:
            return items

        tail = self.transformer.finish(self.context)
        if not tail:
            logger.warning(
                "[%s] %s stream ended without an end-of-stream event",
                self.trace_id,
                self.transformer.display_name,
            )
        for item in tail:
            items.append(item)
            if item is STREAM_DONE:
                self._finished = True
                break
        return items

    def _decode_lines(self, lines: list[str]) -> list[StreamItem]:
        items: list[StreamItem] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                decoded = self.transformer.parse_line(line, self.context)
            except (ValueError, TypeError, AttributeError) as e:
                self._dropped += 1
                logger.warning(
                    "[%s] Dropping malformed %s stream line: %s (%s)",
                    self.trace_id,
                    self.transformer.display_name,
                    line[:200],
                    e,
                )
                continue

            for item in decoded:
                items.append(item)
                if item is STREAM_DONE:
                    self._finished = True
                    return items
        return items


# Chunked transfer-encoding leftovers seen in proof-attested bodies
_LEADING_CHUNK_SIZE = re.compile(r"\A[0-9a-fA-F]+\r\n")
_TERMINAL_CHUNK = re.compile(r"(?:\r\n)?0\r\n\r\n\Z")
_INTERIOR_CHUNK_SIZE = re.compile(r"\r\n[0-9a-fA-F]+\r\n")
_TRAILING_CRLF = re.compile(r"\r\n\Z")
_TRAILING_ASTERISKS = re.compile(r"\*+\Z")


def strip_chunk_artifacts(text: str) -> str:
    """Remove chunked-encoding framing and extraction padding from a body.

    Strips, in order: trailing ``*`` padding, the terminal ``0\\r\\n\\r\\n``
    chunk, a leading hex chunk-size line, interior ``\\r\\n<hex>\\r\\n``
    chunk-size markers and a trailing CRLF. Each step is a no-op when its
    artifact is absent, so clean JSON comes back unchanged.
    """
    cleaned = _TRAILING_ASTERISKS.sub("", text)
    cleaned = _TERMINAL_CHUNK.sub("", cleaned)
    cleaned = _LEADING_CHUNK_SIZE.sub("", cleaned)
    cleaned = _INTERIOR_CHUNK_SIZE.sub("", cleaned)
    cleaned = _TRAILING_CRLF.sub("", cleaned)
    return _TRAILING_ASTERISKS.sub("", cleaned)
