"""Tool handlers – the bridge between JSON-RPC methods and the Canvas client."""

from __future__ import annotations

import logging
import time

from canvas_gateway.errors import ToolExecutionError, UpstreamError, UpstreamResponseParseError
from canvas_gateway.mcp.registry import ToolRegistry
from canvas_gateway.schemas.canvas import EmptyParams, ListCoursesParams
from canvas_gateway.schemas.jsonrpc import JsonRpcRequest
from canvas_gateway.services.canvas_client import CanvasClient

logger = logging.getLogger("gateway.tools")


def _elapsed_ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 2)


def _upstream_failure(tool: str, exc: Exception) -> ToolExecutionError:
    """Translate an upstream failure into a tool error with caller-safe data."""
    if isinstance(exc, UpstreamError):
        logger.error(
            "%s upstream failure kind=%s status=%s url=%s body=%r",
            tool,
            exc.kind.value,
            exc.status,
            exc.url,
            exc.body_snippet,
        )
        return ToolExecutionError(tool, str(exc), exc.public_data())
    logger.error("%s could not parse upstream response: %s", tool, exc)
    return ToolExecutionError(tool, str(exc), {"upstream": {"kind": "invalid_response"}})


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------


async def handle_ping(params: EmptyParams, request: JsonRpcRequest) -> dict:
    """Lightweight heartbeat that confirms the dispatcher is reachable."""
    return {"ok": True}


def make_list_tools_handler(registry: ToolRegistry):
    async def handle_list_tools(params: EmptyParams, request: JsonRpcRequest) -> dict:
        return {"tools": [tool.model_dump(exclude_none=True) for tool in registry.list_tools()]}

    return handle_list_tools


# ---------------------------------------------------------------------------
# Canvas tools
# ---------------------------------------------------------------------------


class CanvasTools:
    """Handlers backed by a shared :class:`CanvasClient`."""

    def __init__(self, client: CanvasClient) -> None:
        self.client = client

    async def handle_get_current_user(self, params: EmptyParams, request: JsonRpcRequest) -> dict:
        """Return the profile of the user that owns the API token."""
        t0 = time.perf_counter()
        try:
            profile = await self.client.get_current_user()
        except (UpstreamError, UpstreamResponseParseError) as exc:
            raise _upstream_failure("canvas.get_current_user", exc) from exc

        logger.info("canvas.get_current_user id=%s ms=%.1f", profile.id, _elapsed_ms(t0))
        return profile.model_dump(exclude_none=True)

    async def handle_list_courses(self, params: ListCoursesParams, request: JsonRpcRequest) -> dict:
        """List every course of the authenticated user, across all pages.

        Args:
            params: {"enrollment_state": str (default "active"), "per_page": int (default 50)}
        """
        t0 = time.perf_counter()
        try:
            courses = await self.client.list_courses(
                enrollment_state=params.enrollment_state, per_page=params.per_page
            )
        except (UpstreamError, UpstreamResponseParseError) as exc:
            raise _upstream_failure("canvas.list_courses", exc) from exc

        logger.info(
            "canvas.list_courses state=%s results=%d ms=%.1f",
            params.enrollment_state,
            len(courses),
            _elapsed_ms(t0),
        )
        return {
            "courses": [course.model_dump(exclude_none=True) for course in courses],
            "count": len(courses),
        }


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------


def register_builtin_tools(registry: ToolRegistry) -> None:
    registry.register(
        "system.ping",
        EmptyParams,
        handle_ping,
        description="Lightweight heartbeat that confirms the dispatcher is reachable.",
    )
    registry.register(
        "system.list_tools",
        EmptyParams,
        make_list_tools_handler(registry),
        description="List every registered method with its parameter schema.",
    )


def register_canvas_tools(registry: ToolRegistry, client: CanvasClient) -> None:
    tools = CanvasTools(client)
    registry.register(
        "canvas.get_current_user",
        EmptyParams,
        tools.handle_get_current_user,
        description="Get the Canvas profile of the authenticated user.",
    )
    registry.register(
        "canvas.list_courses",
        ListCoursesParams,
        tools.handle_list_courses,
        description=(
            "List the authenticated user's Canvas courses, following pagination. "
            "Returns id, name, course_code and workflow_state for each course."
        ),
    )


def build_registry(client: CanvasClient | None = None) -> ToolRegistry:
    """Create the registry used by the server.  Canvas tools need a client."""
    registry = ToolRegistry()
    register_builtin_tools(registry)
    if client is not None:
        register_canvas_tools(registry, client)
    return registry
