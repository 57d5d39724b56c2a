"""LLM client for upstream API calls.

Uses aiohttp.ClientSession for both buffered and streaming requests.
One session (connection pool) is shared by all requests; per-request
authentication comes from the UpstreamRequest headers and params.

No retries: a failed call is reported once and mapped by the dispatcher.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiohttp

from .transport import TransportError, UpstreamError

if TYPE_CHECKING:
    from llmux.gateway.transforms.base import UpstreamRequest

logger = logging.getLogger(__name__)


@dataclass
class LLMClientConfig:
    """Configuration for LLM client."""

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    read_timeout: float = 300.0


class ResponseByteStream:
    """Body of a streaming aiohttp response, fragment by fragment.

    Closing it closes the underlying response, which drops the connection
    instead of draining the rest of the body.
    """

    def __init__(self, response: aiohttp.ClientResponse, trace_id: str):
        self._response = response
        self._trace_id = trace_id
        self._closed = False
        self.bytes_read = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for data in self._response.content.iter_any():
                self.bytes_read += len(data)
                yield data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Upstream stream read failed: {type(e).__name__}: {e}"
            ) from e
        logger.debug("[%s] Upstream stream complete (%d bytes)", self._trace_id, self.bytes_read)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()


@dataclass
class LLMClient:
    """HTTP transport for upstream LLM APIs.

    Provides both streaming and non-streaming methods.
    """

    config: LLMClientConfig
    _session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        """Initialize HTTP session."""
        timeout = aiohttp.ClientTimeout(
            connect=self.config.connect_timeout,
            total=self.config.read_timeout,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def send(self, upstream: UpstreamRequest, trace_id: str) -> dict[str, Any]:
        """Non-streaming request.

        Args:
            upstream: Provider request built by a transformer
            trace_id: Trace ID for log correlation

        Returns:
            Decoded JSON response body

        Raises:
            UpstreamError: If upstream returns a non-success status
            TransportError: If the request fails or the body is not JSON
        """
        start_time = time.time()
        response = await self._post(upstream, trace_id)
        try:
            if response.status >= 300:
                raise await self._upstream_error(response, trace_id)
            try:
                body = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransportError(f"Upstream read failed: {type(e).__name__}: {e}") from e
        finally:
            response.release()

        logger.debug(
            "[%s] %s responded in %.2fs (%d bytes)",
            trace_id,
            upstream.provider.value,
            time.time() - start_time,
            len(body),
        )

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"Upstream returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise TransportError(f"Upstream returned {type(data).__name__}, expected an object")
        return data

    async def open_stream(self, upstream: UpstreamRequest, trace_id: str) -> ResponseByteStream:
        """Streaming request.

        Returns once the upstream answered with a 2xx status; the body is read lazily
        through the returned stream.

        Raises:
            UpstreamError: If upstream returns a non-success status
            TransportError: If the connection fails
        """
        response = await self._post(upstream, trace_id)
        if response.status >= 300:
            try:
                raise await self._upstream_error(response, trace_id)
            finally:
                response.release()

        logger.debug("[%s] Starting to receive %s stream", trace_id, upstream.provider.value)
        return ResponseByteStream(response, trace_id)

    async def _post(self, upstream: UpstreamRequest, trace_id: str) -> aiohttp.ClientResponse:
        if self._session is None:
            raise RuntimeError("Client not connected. Call connect() first.")

        try:
            return await self._session.post(
                upstream.url,
                json=upstream.body,
                headers=upstream.headers,
                params=upstream.params or None,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "[%s] Request to %s failed: %s: %s",
                trace_id,
                upstream.provider.value,
                type(e).__name__,
                e,
            )
            raise TransportError(f"Upstream request failed: {type(e).__name__}: {e}") from e

    async def _upstream_error(
        self,
        response: aiohttp.ClientResponse,
        trace_id: str,
    ) -> UpstreamError:
        try:
            error_body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError):
            error_body = ""
        logger.error(
            "[%s] Upstream error %d: %s",
            trace_id,
            response.status,
            error_body[:500],
        )
        return UpstreamError(
            f"Upstream returned {response.status}",
            response.status,
            error_body,
        )
