"""Composition helpers for running the gateway.

These wire configuration, transport and server together so callers don't
have to.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from llmux.gateway.clients.proof_fetch import ProofFetcher
    from llmux.gateway.server import GatewayServer


def create_gateway(
    config_file: str | Path | None = None,
    proof_fetcher: ProofFetcher | None = None,
    **overrides: Any,
) -> GatewayServer:
    """Build a gateway server from config file, environment and overrides.

    Args:
        config_file: Path to YAML config (or LLMUX_CONFIG env var).
        proof_fetcher: Route upstream calls through this proof-attesting
            fetcher instead of direct HTTP.
        **overrides: GatewayConfig fields; None values are ignored.

    Returns:
        A server that has not been started yet.
    """
    from llmux.gateway.clients.proof_fetch import ProofFetchTransport
    from llmux.gateway.config import load_config
    from llmux.gateway.server import GatewayServer

    config = load_config(config_file, **overrides)
    transport = ProofFetchTransport(fetcher=proof_fetcher) if proof_fetcher else None
    return GatewayServer(config=config, transport=transport)


async def run_gateway(
    config_file: str | Path | None = None,
    host: str | None = None,
    port: int | None = None,
    debug_dir: str | None = None,
) -> None:
    """Create and run the gateway until it is shut down.

    Configuration priority:
    1. Function arguments (highest)
    2. Environment variables
    3. Config file (if given or LLMUX_CONFIG is set)

    Example:
        >>> # export OPENAI_API_KEY=sk-...
        >>> await run_gateway(port=3456)
    """
    server = create_gateway(config_file, host=host, port=port, debug_dir=debug_dir)
    await server.serve()
