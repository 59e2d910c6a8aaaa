"""Shared-secret guard, security headers and CORS origin parsing."""

from __future__ import annotations

import hmac
import uuid
from typing import Callable, Mapping

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class SharedSecretGuard:
    """Compare one request header against a configured secret.

    The guard is disabled when no secret is configured or when *bypass* is
    set.  Header names are matched case-insensitively.

    Usage:
        guard = SharedSecretGuard("s3cret", header_name="x-mcp-secret")
        guard.is_authorized(request.headers)
    """

    def __init__(self, secret: str | None, header_name: str = "x-mcp-secret", bypass: bool = False):
        self.secret = secret
        self.header_name = header_name.lower()
        self.bypass = bypass

    @property
    def enabled(self) -> bool:
        return bool(self.secret) and not self.bypass

    def is_authorized(self, headers: Mapping[str, str]) -> bool:
        if not self.enabled:
            return True
        provided = _get_header(headers, self.header_name)
        if provided is None:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self.secret.encode("utf-8"))


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    # Starlette headers are already case-insensitive; plain dicts are not.
    value = headers.get(name)
    if value is not None:
        return value
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add a request ID and a minimal set of hardening headers to every response.

    Usage:
        app.add_middleware(SecurityHeadersMiddleware)
    """

    def __init__(self, app: Callable, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        if self.enabled:
            for name, value in SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
        return response


def parse_cors_origins(origins_string: str | None) -> list[str]:
    """Parse CORS origins from a comma-separated string.

    An empty value, or one that lists ``*``, allows every origin.

    Example:
        >>> parse_cors_origins("https://app1.com, https://app2.com")
        ["https://app1.com", "https://app2.com"]

        >>> parse_cors_origins("")
        ["*"]
    """
    origins = [origin.strip() for origin in (origins_string or "").split(",") if origin.strip()]
    if not origins or "*" in origins:
        return ["*"]
    return origins


SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}
