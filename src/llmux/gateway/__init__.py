"""llmux Gateway - one chat-completion API in front of several LLM providers.

Components:
- Server: aiohttp front end (canonical endpoint, SSE, health, shutdown)
- Dispatcher: validation, provider resolution, upstream call, normalisation
- Transforms: per-provider request translation and response normalisation
- Clients: upstream transports (direct HTTP, proof-attesting fetch)

Usage (via compose.py convenience functions):
    from llmux.compose import run_gateway
    import asyncio

    asyncio.run(run_gateway(port=3456))

Usage (direct):
    from llmux.gateway.config import load_config
    from llmux.gateway.server import GatewayServer
    import asyncio

    async def main():
        server = GatewayServer(config=load_config(openai_api_key="sk-..."))
        await server.serve()

    asyncio.run(main())
"""

from llmux.gateway.errors import (
    ERROR_STATUS_MAP,
    ERROR_TYPE_MAP,
    ErrorKind,
    GatewayError,
    StreamError,
)
from llmux.gateway.tracing import RequestTracer

__all__ = [
    "ERROR_STATUS_MAP",
    "ERROR_TYPE_MAP",
    "ErrorKind",
    "GatewayError",
    "RequestTracer",
    "StreamError",
]
