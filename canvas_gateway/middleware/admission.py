"""Admission control applied before any JSON-RPC processing.

Two gates, always in this order:

1. shared-secret guard  – 401 on a missing or wrong header;
2. per-client rate limit – 429 with ``Retry-After``.

Unauthenticated traffic is turned away before it can spend the rate budget
of legitimate callers.  Rejections carry a JSON-RPC error envelope with
``id: null`` and no detail about why a secret was refused.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from canvas_gateway.middleware.rate_limit import RateLimiter
from canvas_gateway.middleware.security import SharedSecretGuard
from canvas_gateway.schemas.jsonrpc import ErrorCode, error_response

logger = logging.getLogger("gateway.admission")


def client_key(request: Request) -> str:
    """Identify the caller by its remote address."""
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class AdmissionMiddleware(BaseHTTPMiddleware):
    """Gate every request whose path starts with one of *protected_paths*.

    Usage:
        app.add_middleware(
            AdmissionMiddleware,
            guard=SharedSecretGuard(secret, header_name),
            rate_limiter=RateLimiter(window_ms, max_requests),
        )
    """

    def __init__(
        self,
        app: Callable,
        guard: SharedSecretGuard | None = None,
        rate_limiter: RateLimiter | None = None,
        protected_paths: Iterable[str] = ("/mcp",),
    ):
        super().__init__(app)
        self.guard = guard
        self.rate_limiter = rate_limiter
        self.protected_paths = tuple(protected_paths)

    def _is_protected(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.protected_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS" or not self._is_protected(request.url.path):
            return await call_next(request)

        key = client_key(request)

        if self.guard is not None and not self.guard.is_authorized(request.headers):
            logger.warning("Rejected %s %s from %s: unauthorized", request.method, request.url.path, key)
            return JSONResponse(
                status_code=401,
                content=error_response(None, ErrorCode.UNAUTHORIZED, "Unauthorized"),
            )

        if self.rate_limiter is not None:
            allowed, retry_after = await self.rate_limiter.check_rate_limit(key)
            if not allowed:
                logger.warning(
                    "Rejected %s %s from %s: rate limited, retry after %ss",
                    request.method,
                    request.url.path,
                    key,
                    retry_after,
                )
                return JSONResponse(
                    status_code=429,
                    content=error_response(
                        None,
                        ErrorCode.RATE_LIMITED,
                        "Too many requests",
                        {"retry_after": retry_after},
                    ),
                    headers={"Retry-After": str(retry_after)},
                )

        return await call_next(request)
