"""Shared error definitions for the gateway.

Canonical error taxonomy, its HTTP/wire mapping, and the mapping from
provider failures to canonical errors.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Canonical error kinds."""

    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    API_ERROR = "api_error"


# Error kind -> HTTP status
ERROR_STATUS_MAP = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.API_ERROR: 500,
}

# Error kind -> "type" field of the error body
ERROR_TYPE_MAP = {
    ErrorKind.INVALID_REQUEST: "invalid_request_error",
    ErrorKind.AUTHENTICATION: "authentication_error",
    ErrorKind.API_ERROR: "api_error",
}


class GatewayError(Exception):
    """Canonical error surfaced to gateway callers."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        upstream_status: int | None = None,
        upstream_payload: Any = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.upstream_status = upstream_status
        self.upstream_payload = upstream_payload

    @property
    def status(self) -> int:
        return ERROR_STATUS_MAP[self.kind]

    @property
    def error_type(self) -> str:
        return ERROR_TYPE_MAP[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"message": self.message, "type": self.error_type}}

    @classmethod
    def invalid_request(cls, message: str) -> GatewayError:
        return cls(ErrorKind.INVALID_REQUEST, message)

    @classmethod
    def authentication(cls, message: str) -> GatewayError:
        return cls(ErrorKind.AUTHENTICATION, message)

    @classmethod
    def api_error(cls, message: str, **kwargs: Any) -> GatewayError:
        return cls(ErrorKind.API_ERROR, message, **kwargs)


class StreamError(Exception):
    """Raised to the stream consumer when the upstream stream breaks.

    Distinct from the normal end-of-stream marker: a consumer that sees
    this must treat the stream as failed.
    """


class MalformedUpstreamError(ValueError):
    """Raised when a provider payload cannot be normalized."""


def parse_error_payload(body: str | None) -> Any:
    """Decode an upstream error body, falling back to the raw text."""
    if not body:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def map_upstream_error(provider_label: str, status: int, body: str | None) -> GatewayError:
    """Convert a non-success upstream response into an ``api_error``."""
    payload = parse_error_payload(body)
    if payload is None:
        detail = f"HTTP {status}"
    elif isinstance(payload, str):
        detail = payload
    else:
        detail = json.dumps(payload, separators=(",", ":"))

    return GatewayError.api_error(
        f"{provider_label} API error: {detail}",
        upstream_status=status,
        upstream_payload=payload,
    )
