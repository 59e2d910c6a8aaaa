"""HTTP transport for the JSON-RPC gateway.

Exposes the tool registry over HTTP and a keep-alive SSE channel.

Run with:
    python -m canvas_gateway.main

Endpoints:
    GET  /health      – readiness probe (not admission-gated)
    POST /mcp         – JSON-RPC 2.0 calls
    GET  /mcp/stream  – Server-Sent Events keep-alive channel
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from canvas_gateway.config import Settings, settings as default_settings
from canvas_gateway.mcp.dispatcher import Dispatcher
from canvas_gateway.mcp.registry import ToolRegistry
from canvas_gateway.mcp.streams import StreamRegistry, heartbeat_events
from canvas_gateway.mcp.tools import build_registry
from canvas_gateway.middleware.admission import AdmissionMiddleware
from canvas_gateway.middleware.rate_limit import RateLimiter
from canvas_gateway.middleware.security import (
    SecurityHeadersMiddleware,
    SharedSecretGuard,
    parse_cors_origins,
)
from canvas_gateway.schemas.jsonrpc import ErrorCode, error_response
from canvas_gateway.services.canvas_client import CanvasClient

logger = logging.getLogger("gateway.http")

_BAD_REQUEST_CODES = {ErrorCode.PARSE_ERROR, ErrorCode.INVALID_REQUEST}


def build_canvas_client(config: Settings) -> CanvasClient:
    return CanvasClient(
        config.canvas_domain,
        config.canvas_api_token,
        max_retries=config.canvas_max_retries,
        retry_delay=config.canvas_retry_delay_ms / 1000,
        timeout=config.canvas_timeout_ms / 1000,
    )


def build_rate_limiter(config: Settings) -> RateLimiter | None:
    if not config.rate_limit_enabled:
        return None
    return RateLimiter(
        window_ms=config.rate_limit_window_ms,
        max_requests=config.rate_limit_max_requests,
        bypass=config.rate_limit_bypass,
    )


def build_secret_guard(config: Settings) -> SharedSecretGuard | None:
    if not config.shared_secret:
        return None
    return SharedSecretGuard(
        config.shared_secret,
        header_name=config.shared_secret_header,
        bypass=config.shared_secret_bypass,
    )


async def read_limited_body(request: Request, limit: int) -> bytes | None:
    """Read the request body, or return ``None`` once it passes *limit* bytes.

    A declared ``Content-Length`` over the limit is refused without reading
    anything; otherwise the stream is consumed chunk by chunk.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        return None
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            return None
    return bytes(body)


def _status_for(response: dict) -> int:
    error = response.get("error")
    if error is not None and error.get("code") in _BAD_REQUEST_CODES:
        return 400
    return 200


def create_app(
    config: Settings | None = None,
    registry: ToolRegistry | None = None,
    canvas_client: CanvasClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    With no *registry*, one is built from the built-in tools plus the
    Canvas tools, using *canvas_client* or a client made from *config*.
    """
    config = config or default_settings
    owns_client = False

    if registry is None:
        if canvas_client is None and not config.missing_required():
            canvas_client = build_canvas_client(config)
            owns_client = True
        registry = build_registry(canvas_client)

    dispatcher = Dispatcher(registry)
    streams = StreamRegistry()
    rate_limiter = build_rate_limiter(config)
    guard = build_secret_guard(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "HTTP transport starting (env=%s, tools=%s)", config.app_env, ", ".join(registry.names())
        )
        yield
        closed = streams.close_all()
        logger.info("HTTP transport shutting down, closed %d stream(s)", closed)
        if owns_client and canvas_client is not None:
            await canvas_client.aclose()

    app = FastAPI(
        title="Canvas LMS MCP Gateway",
        version=config.service_version,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    app.state.streams = streams
    app.state.rate_limiter = rate_limiter

    # Starlette runs the last-added middleware first: CORS, headers, then admission.
    app.add_middleware(AdmissionMiddleware, guard=guard, rate_limiter=rate_limiter)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_cors_origins(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Health ────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": config.service_name, "version": config.service_version}

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    @app.post("/mcp")
    async def rpc_endpoint(request: Request):
        """Dispatch one JSON-RPC call.  Notifications get an empty 204."""
        body = await read_limited_body(request, config.max_body_bytes)
        if body is None:
            logger.warning("Rejected request body over %d bytes", config.max_body_bytes)
            return JSONResponse(
                status_code=413,
                content=error_response(None, ErrorCode.INVALID_REQUEST, "Request entity too large"),
            )

        try:
            response = await dispatcher.dispatch(body)
        except Exception:
            logger.exception("Failed to handle JSON-RPC request")
            return JSONResponse(
                status_code=500,
                content=error_response(
                    None, ErrorCode.INTERNAL_ERROR, "Internal error while processing request."
                ),
            )

        if response is None:
            return Response(status_code=204)
        return JSONResponse(status_code=_status_for(response), content=response)

    # ── SSE ───────────────────────────────────────────────────────────────

    @app.get("/mcp/stream")
    async def stream_endpoint(request: Request, topic: str | None = Query(None)):
        """Keep-alive event stream.

        Emits ``connected`` once, then ``ping`` at a fixed interval until
        the client disconnects or the server shuts down.  *topic* is
        recorded but not used for delivery yet.
        """
        return EventSourceResponse(
            heartbeat_events(
                streams,
                topic,
                interval=config.sse_heartbeat_interval_seconds,
                is_disconnected=request.is_disconnected,
            )
        )

    return app
