"""Shared error types for the gateway and its upstream client."""

from __future__ import annotations

import enum
from typing import Any


class GatewayError(Exception):
    """Base error for all gateway failures."""


class ToolRegistrationError(GatewayError):
    """A tool name was registered twice. Raised at configuration time."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class InvalidRequest(GatewayError):
    """A decoded payload is not a well-formed JSON-RPC request."""


class ToolExecutionError(GatewayError):
    """A tool handler failed.

    ``data`` is the only part that is ever returned to the caller, so it
    must not carry internal detail.
    """

    def __init__(self, name: str, detail: str = "", data: dict[str, Any] | None = None) -> None:
        self.name = name
        self.detail = detail
        self.data = data
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class UpstreamConfigError(GatewayError, ValueError):
    """The upstream client was built without a domain or token."""


class UpstreamErrorKind(str, enum.Enum):
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    NETWORK = "network"


class UpstreamError(GatewayError):
    """Final failure of an upstream call after the retry budget is spent.

    Callers branch on ``kind``.  ``status`` is 0 for timeouts and network
    failures, otherwise the HTTP status code.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: UpstreamErrorKind,
        status: int,
        url: str,
        body_snippet: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.url = url
        self.body_snippet = body_snippet

    def public_data(self) -> dict[str, Any]:
        return {"upstream": {"kind": self.kind.value, "status": self.status}}


class UpstreamResponseParseError(GatewayError):
    """The upstream answered successfully but the body was not valid JSON."""

    def __init__(self, message: str, *, url: str, raw_snippet: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.raw_snippet = raw_snippet
