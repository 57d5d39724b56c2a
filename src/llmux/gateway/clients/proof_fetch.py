"""Transport adapter for proof-attesting fetch primitives.

Such a fetcher performs the upstream call itself and hands back the whole
response body as one string, typically with chunked transfer-encoding
framing and extraction padding still in it. The body is cleaned with
``strip_chunk_artifacts`` before anything parses it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from llmux.gateway.transforms.framing import strip_chunk_artifacts

from .transport import TransportError, UpstreamError

if TYPE_CHECKING:
    from llmux.gateway.transforms.base import UpstreamRequest

logger = logging.getLogger(__name__)


class ProofFetcher(Protocol):
    """Fetch primitive that returns the attested response body.

    Should raise UpstreamError for non-success statuses; any other
    exception is treated as a transport failure.
    """

    async def __call__(
        self,
        url: str,
        *,
        method: str,
        headers: dict[str, str],
        params: dict[str, str],
        body: str,
    ) -> str: ...


class BufferedByteStream:
    """A ByteStream over a body that is already fully in memory."""

    def __init__(self, body: bytes):
        self._body = body
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._body and not self._closed:
            yield self._body

    async def close(self) -> None:
        self._closed = True
        self._body = b""


@dataclass
class ProofFetchTransport:
    """Transport backed by a proof-attesting fetcher."""

    fetcher: ProofFetcher

    async def _fetch(self, upstream: UpstreamRequest, trace_id: str) -> str:
        try:
            raw = await self.fetcher(
                upstream.url,
                method="POST",
                headers=upstream.headers,
                params=upstream.params,
                body=json.dumps(upstream.body),
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.warning("[%s] Proof fetch failed: %s: %s", trace_id, type(e).__name__, e)
            raise TransportError(f"Proof fetch failed: {type(e).__name__}: {e}") from e

        cleaned = strip_chunk_artifacts(raw)
        logger.debug(
            "[%s] Proof fetch returned %d chars (%d after cleanup)",
            trace_id,
            len(raw),
            len(cleaned),
        )
        return cleaned

    async def send(self, upstream: UpstreamRequest, trace_id: str) -> dict[str, Any]:
        body = await self._fetch(upstream, trace_id)
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"Proof fetch returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise TransportError(f"Proof fetch returned {type(data).__name__}, expected an object")
        return data

    async def open_stream(self, upstream: UpstreamRequest, trace_id: str) -> BufferedByteStream:
        body = await self._fetch(upstream, trace_id)
        return BufferedByteStream(body.encode("utf-8"))
