"""Gateway dispatcher.

Runs one canonical request through the pipeline:

    VALIDATING -> RESOLVING -> TRANSLATING -> AWAITING_UPSTREAM
        -> NORMALIZING (buffered) | STREAMING -> DONE

Every failure on the way, whatever its origin, leaves as a GatewayError.
Mid-stream failures, which happen after the caller already has chunks,
leave as StreamError instead.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from llmux.gateway.clients.transport import ByteStream, Transport, TransportError, UpstreamError
from llmux.gateway.config import GatewayConfig
from llmux.gateway.errors import GatewayError, StreamError, map_upstream_error
from llmux.gateway.tracing import RequestTracer
from llmux.gateway.transforms import default_transformers
from llmux.gateway.transforms.base import ProviderTransformer, UpstreamRequest
from llmux.gateway.transforms.framing import FrameDecoder
from llmux.gateway.transforms.resolver import ProviderTag, resolve_provider
from llmux.gateway.transforms.types import (
    STREAM_DONE,
    ChatRequest,
    ChatResponse,
    StreamContext,
    StreamItem,
)
from llmux.gateway.transforms.validation import parse_request

logger = logging.getLogger(__name__)


class DispatchState(Enum):
    """Stages a request passes through."""

    VALIDATING = auto()
    RESOLVING = auto()
    TRANSLATING = auto()
    AWAITING_UPSTREAM = auto()
    NORMALIZING = auto()
    STREAMING = auto()
    DONE = auto()


def _enter(trace_id: str, state: DispatchState) -> None:
    logger.debug("[%s] state=%s", trace_id, state.name)


class ChunkStream:
    """Lazy, one-shot sequence of canonical stream items.

    Upstream bytes are read only when the consumer asks for an item and
    none is pending. The sequence ends after STREAM_DONE; a transport
    failure raises StreamError instead. ``aclose()`` (or leaving an
    ``async with`` block) cancels the stream and closes the upstream
    connection.
    """

    def __init__(self, source: ByteStream, decoder: FrameDecoder, trace_id: str):
        self._source = source
        self._source_iter: AsyncIterator[bytes] = source.__aiter__()
        self._decoder = decoder
        self._trace_id = trace_id
        self._pending: deque[StreamItem] = deque()
        self._exhausted = False
        self._closed = False
        self.chunks_emitted = 0

    @property
    def completed(self) -> bool:
        """True once the end-of-stream marker was decoded."""
        return self._decoder.finished

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamItem:
        while not self._pending:
            if self._exhausted or self._closed:
                raise StopAsyncIteration
            await self._pull()

        item = self._pending.popleft()
        if item is not STREAM_DONE:
            self.chunks_emitted += 1
        return item

    async def _pull(self) -> None:
        try:
            data = await self._source_iter.__anext__()
        except StopAsyncIteration:
            self._pending.extend(self._decoder.close())
            self._exhausted = True
            _enter(self._trace_id, DispatchState.DONE)
            await self._release()
            return
        except TransportError as e:
            logger.error("[%s] Upstream stream aborted: %s", self._trace_id, e)
            await self.aclose()
            raise StreamError(str(e)) from e

        self._pending.extend(self._decoder.feed(data))
        if self._decoder.finished:
            self._exhausted = True
            _enter(self._trace_id, DispatchState.DONE)
            await self._release()

    async def _release(self) -> None:
        aclose = getattr(self._source_iter, "aclose", None)
        if aclose is not None:
            await aclose()
        await self._source.close()

    async def aclose(self) -> None:
        """Stop the stream and release the upstream connection."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        if not self._exhausted:
            logger.debug("[%s] Stream cancelled by consumer", self._trace_id)
        await self._release()

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


@dataclass
class ChatGateway:
    """Routes canonical requests to the right provider and back.

    Example:
        >>> gateway = ChatGateway(config=load_config(), transport=client)
        >>> result = await gateway.dispatch({"model": "openai/gpt-4o", "messages": [...]})
    """

    config: GatewayConfig
    transport: Transport
    transformers: Mapping[ProviderTag, ProviderTransformer] = field(
        default_factory=default_transformers
    )
    tracer: RequestTracer | None = None

    def parse(self, body: Any, trace_id: str = "") -> ChatRequest:
        """Validate an inbound body. Raises invalid_request on failure."""
        _enter(trace_id, DispatchState.VALIDATING)
        try:
            return parse_request(body)
        except ValueError as e:
            logger.info("[%s] Rejected invalid request: %s", trace_id, e)
            raise GatewayError.invalid_request(str(e)) from e

    def prepare(
        self,
        request: ChatRequest,
        trace_id: str = "",
    ) -> tuple[ProviderTransformer, UpstreamRequest]:
        """Resolve the provider, check its credential and build the wire request."""
        _enter(trace_id, DispatchState.RESOLVING)
        provider = resolve_provider(request.model)
        transformer = self.transformers[provider]

        _enter(trace_id, DispatchState.TRANSLATING)
        if self.config.api_key_for(provider) is None:
            logger.warning("[%s] No credential configured for %s", trace_id, provider.value)
            raise GatewayError.authentication(f"{transformer.display_name} API key not configured")

        upstream = transformer.to_upstream(request, self.config)
        if self.tracer:
            self.tracer.save_debug(trace_id, "2_upstream_request.json", upstream.redacted())
        logger.info(
            "[%s] Request: model=%s, messages=%d, stream=%s -> %s (%s)",
            trace_id,
            request.model,
            len(request.messages),
            request.stream,
            provider.value,
            request.provider_model,
        )
        return transformer, upstream

    async def complete(self, request: ChatRequest, trace_id: str = "") -> ChatResponse:
        """Run a buffered request end to end."""
        transformer, upstream = self.prepare(request, trace_id)
        label = transformer.display_name

        _enter(trace_id, DispatchState.AWAITING_UPSTREAM)
        try:
            data = await self.transport.send(upstream, trace_id)
        except UpstreamError as e:
            raise map_upstream_error(label, e.status_code, e.response_body) from e
        except TransportError as e:
            raise GatewayError.api_error(f"{label} request failed: {e}") from e

        _enter(trace_id, DispatchState.NORMALIZING)
        try:
            response = transformer.from_upstream(data, request)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error("[%s] Could not normalize %s response: %s", trace_id, label, e)
            raise GatewayError.api_error(
                f"{label} API returned an unexpected response: {e}"
            ) from e

        logger.info(
            "[%s] Response complete: prompt_tokens=%d, completion_tokens=%d",
            trace_id,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )
        _enter(trace_id, DispatchState.DONE)
        return response

    async def open_stream(self, request: ChatRequest, trace_id: str = "") -> ChunkStream:
        """Start a streaming request.

        Returns once the provider accepted the call, so upstream rejections
        are still ordinary GatewayErrors.
        """
        transformer, upstream = self.prepare(request, trace_id)
        label = transformer.display_name

        _enter(trace_id, DispatchState.AWAITING_UPSTREAM)
        try:
            source = await self.transport.open_stream(upstream, trace_id)
        except UpstreamError as e:
            raise map_upstream_error(label, e.status_code, e.response_body) from e
        except TransportError as e:
            raise GatewayError.api_error(f"{label} request failed: {e}") from e

        _enter(trace_id, DispatchState.STREAMING)
        decoder = FrameDecoder(transformer, StreamContext(model=request.model), trace_id)
        return ChunkStream(source, decoder, trace_id)

    async def dispatch(self, body: Any, trace_id: str = "") -> ChatResponse | ChunkStream:
        """Full pipeline for an inbound body, branching on its stream flag."""
        request = self.parse(body, trace_id)
        if request.stream:
            return await self.open_stream(request, trace_id)
        return await self.complete(request, trace_id)
