"""Upstream transports: direct HTTP streaming and proof-attesting fetch."""

from .llm_client import LLMClient, LLMClientConfig
from .proof_fetch import ProofFetcher, ProofFetchTransport
from .transport import ByteStream, Transport, TransportError, UpstreamError

__all__ = [
    "ByteStream",
    "LLMClient",
    "LLMClientConfig",
    "ProofFetchTransport",
    "ProofFetcher",
    "Transport",
    "TransportError",
    "UpstreamError",
]
