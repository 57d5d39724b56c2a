"""Chat-completion gateway server.

Exposes a single canonical endpoint, POST /v1/chat/completions (also
mounted at /api/call-llm), that accepts OpenAI-style chat-completion
requests for any supported provider:

1. Validates the request body
2. Resolves the provider from the model's prefix
3. Forwards the translated request upstream
4. Returns a canonical response, or canonical SSE chunks when streaming
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from aiohttp import web

from llmux.gateway.clients.llm_client import LLMClient, LLMClientConfig
from llmux.gateway.clients.transport import Transport
from llmux.gateway.config import GatewayConfig
from llmux.gateway.dispatcher import ChatGateway, ChunkStream
from llmux.gateway.errors import GatewayError, StreamError
from llmux.gateway.tracing import RequestTracer
from llmux.gateway.transforms.types import STREAM_DONE

logger = logging.getLogger(__name__)

SSE_DONE = b"data: [DONE]\n\n"


class AdmissionGate(Protocol):
    """Hook consulted before a request reaches the dispatcher.

    Return None to admit the request, or a response (e.g. 402) to answer
    the caller without calling any provider.
    """

    async def __call__(
        self, request: web.Request, body: dict[str, Any]
    ) -> web.StreamResponse | None: ...


def format_sse(payload: dict[str, Any]) -> bytes:
    """Encode one canonical chunk as an SSE frame."""
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n".encode()


@dataclass
class GatewayServer:
    """HTTP front end for the chat-completion gateway.

    With no explicit transport, an aiohttp-based LLMClient is created on
    serve() and closed on stop().

    Example:
        >>> server = GatewayServer(config=load_config())
        >>> await server.serve()
    """

    config: GatewayConfig
    transport: Transport | None = None
    gate: AdmissionGate | None = None
    _app: web.Application | None = None
    _runner: web.AppRunner | None = None
    _client: LLMClient | None = None
    _gateway: ChatGateway | None = None
    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)
    _tracer: RequestTracer = field(init=False)

    def __post_init__(self) -> None:
        """Initialize tracer with debug directory from config."""
        self._tracer = RequestTracer(debug_dir=self.config.debug_dir)

    def create_app(self) -> web.Application:
        """Build the aiohttp application around the current transport."""
        if self.transport is None:
            raise RuntimeError("No transport configured. Call serve() or pass a transport.")

        self._gateway = ChatGateway(
            config=self.config,
            transport=self.transport,
            tracer=self._tracer,
        )

        app = web.Application(client_max_size=self.config.max_body_size)
        app.router.add_post("/v1/chat/completions", self._handle_chat)
        app.router.add_post("/api/call-llm", self._handle_chat)
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/api/shutdown", self._handle_shutdown)
        self._app = app
        return app

    async def start(self, host: str | None = None, port: int | None = None) -> int:
        """Start listening without blocking. Returns the bound port."""
        if self.transport is None:
            self._client = LLMClient(
                config=LLMClientConfig(
                    connect_timeout=self.config.connect_timeout,
                    read_timeout=self.config.read_timeout,
                )
            )
            await self._client.connect()
            self.transport = self._client

        app = self.create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()

        site = web.TCPSite(
            self._runner,
            host if host is not None else self.config.host,
            port if port is not None else self.config.port,
        )
        await site.start()
        bound_port = self._runner.addresses[0][1]

        configured = [tag for tag, ok in self.config.configured_providers().items() if ok]
        logger.info(
            "Gateway listening on %s:%s (providers: %s)",
            host or self.config.host,
            bound_port,
            ", ".join(configured) or "none",
        )
        return bound_port

    async def serve(self) -> None:
        """Start the gateway and block until shutdown is requested."""
        await self.start()
        try:
            await self._shutdown_event.wait()
            logger.info("Gateway shutdown requested")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the gateway server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        if self._client:
            await self._client.close()
            if self.transport is self._client:
                self.transport = None
            self._client = None

    async def _handle_chat(self, request: web.Request) -> web.StreamResponse:
        """Handle POST /v1/chat/completions - main gateway endpoint."""
        # Header validation
        content_type = request.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            return self._error_response(
                GatewayError.invalid_request(
                    f"Content-Type must be application/json, got: {content_type}"
                )
            )

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return self._error_response(GatewayError.invalid_request(f"Invalid JSON: {e}"))

        trace_id = self._tracer.generate_trace_id(body)
        logger.info("[%s] Incoming request for %s", trace_id, request.path)
        self._tracer.save_debug(trace_id, "1_request.json", body)

        if self.gate is not None and isinstance(body, dict):
            rejection = await self.gate(request, body)
            if rejection is not None:
                logger.info(
                    "[%s] Request rejected by admission gate (%d)", trace_id, rejection.status
                )
                return rejection

        if self._gateway is None:
            return self._error_response(
                GatewayError.api_error("Gateway not initialized"), trace_id
            )

        try:
            result = await self._gateway.dispatch(body, trace_id)
        except GatewayError as e:
            self._tracer.save_debug(trace_id, "error.json", e.to_dict())
            return self._error_response(e, trace_id)
        except Exception as e:
            logger.exception("[%s] Unexpected error", trace_id)
            return self._error_response(GatewayError.api_error(f"Internal error: {e}"), trace_id)

        if isinstance(result, ChunkStream):
            return await self._handle_streaming(request, result, trace_id)

        payload = result.to_dict()
        self._tracer.save_debug(trace_id, "3_response.json", payload)
        return web.json_response(payload, headers={"X-Trace-Id": trace_id})

    async def _handle_streaming(
        self,
        request: web.Request,
        stream: ChunkStream,
        trace_id: str,
    ) -> web.StreamResponse:
        """Relay canonical chunks as SSE.

        Headers are committed before the first chunk, so a failure from here
        on ends the response without the [DONE] frame.
        """
        response = web.StreamResponse(
            status=200,
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Trace-Id": trace_id,
            },
        )

        # Collect chunks for debug logging
        debug_chunks: list[dict[str, Any]] = []

        try:
            await response.prepare(request)
            async for item in stream:
                if item is STREAM_DONE:
                    await response.write(SSE_DONE)
                    logger.info(
                        "[%s] Stream complete: %d chunks", trace_id, stream.chunks_emitted
                    )
                    break
                payload = item.to_dict()
                debug_chunks.append(payload)
                await response.write(format_sse(payload))
            else:
                logger.warning(
                    "[%s] Upstream stream ended without an end marker after %d chunks",
                    trace_id,
                    stream.chunks_emitted,
                )
        except StreamError as e:
            logger.error("[%s] Stream aborted: %s", trace_id, e)
            self._tracer.save_debug(
                trace_id, "error.json", {"error": {"message": str(e), "type": "stream_error"}}
            )
        except ConnectionResetError:
            # Client disconnected - this is normal
            logger.debug("[%s] Client disconnected during streaming", trace_id)
        finally:
            await stream.aclose()
            self._tracer.save_debug(trace_id, "3_stream_chunks.json", debug_chunks)

        try:
            await response.write_eof()
        except ConnectionResetError:
            logger.debug("[%s] Client already disconnected", trace_id)

        return response

    def _error_response(self, error: GatewayError, trace_id: str | None = None) -> web.Response:
        """Return canonical error response."""
        headers = {"X-Trace-Id": trace_id} if trace_id else None
        return web.json_response(error.to_dict(), status=error.status, headers=headers)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        return web.json_response(
            {"status": "ok", "providers": self.config.configured_providers()}
        )

    async def _handle_shutdown(self, request: web.Request) -> web.Response:
        """Handle POST /api/shutdown."""
        self._shutdown_event.set()
        return web.json_response({"success": True, "message": "Shutdown initiated"})
