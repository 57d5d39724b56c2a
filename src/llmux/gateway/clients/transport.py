"""Transport interface used by the dispatcher.

A transport performs exactly one upstream call per request. Non-success
statuses raise UpstreamError; connection, timeout and read failures raise
TransportError. Neither is retried.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from llmux.gateway.transforms.base import UpstreamRequest


class UpstreamError(Exception):
    """Raised when upstream API returns an error."""

    def __init__(self, message: str, status_code: int, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class TransportError(Exception):
    """Raised when the upstream call fails below the HTTP status level."""


@runtime_checkable
class ByteStream(Protocol):
    """Raw response body of a streaming upstream call."""

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Carries an UpstreamRequest to the provider."""

    async def send(self, upstream: UpstreamRequest, trace_id: str) -> dict[str, Any]:
        """Buffered call returning the decoded JSON body."""
        ...

    async def open_stream(self, upstream: UpstreamRequest, trace_id: str) -> ByteStream:
        """Start a streaming call.

        Returns only after the upstream status is known to be successful.
        """
        ...
