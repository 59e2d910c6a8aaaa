"""Shared pytest fixtures – fake Canvas transport, registries and app clients."""

from __future__ import annotations

from typing import Any, Callable, Union

import httpx
import pytest
from pydantic import BaseModel

from canvas_gateway.config import Settings
from canvas_gateway.mcp.http_server import create_app
from canvas_gateway.mcp.registry import ToolRegistry
from canvas_gateway.mcp.tools import register_builtin_tools
from canvas_gateway.schemas.canvas import EmptyParams
from canvas_gateway.services.canvas_client import CanvasClient

Responder = Union[httpx.Response, Callable[[httpx.Request], Any]]


class FakeCanvas:
    """Scripted Canvas server for ``httpx.MockTransport``.

    Answers the N-th request with the N-th responder; once the script runs
    out, the last responder is reused.
    """

    def __init__(self, responders: list[Responder]) -> None:
        self.responders = responders
        self.calls: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        index = min(len(self.calls) - 1, len(self.responders) - 1)
        responder = self.responders[index]
        if isinstance(responder, httpx.Response):
            return responder
        result = responder(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested waits."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def make_canvas_client(fake: FakeCanvas, sleep: SleepRecorder | None = None, **kwargs) -> CanvasClient:
    options: dict[str, Any] = {"max_retries": 0, "retry_delay": 0.0, "timeout": 5.0}
    options.update(kwargs)
    return CanvasClient(
        "canvas.test",
        "token-123",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake)),
        sleep=sleep or SleepRecorder(),
        **options,
    )


class AddParams(BaseModel):
    a: int
    b: int


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def registry() -> ToolRegistry:
    """Built-in tools plus a couple of test tools."""
    reg = ToolRegistry()
    register_builtin_tools(reg)

    async def add(params: AddParams, request) -> int:
        return params.a + params.b

    def explode(params, request):
        raise RuntimeError("database password=hunter2 leaked")

    reg.register("math.add", AddParams, add, description="Add two integers.")
    reg.register("test.explode", EmptyParams, explode, description="Always fails.")
    return reg


@pytest.fixture
def make_app(registry: ToolRegistry):
    """Factory: build an app with the test registry and the given settings overrides."""

    def _make(**overrides):
        overrides.setdefault("rate_limit_enabled", False)
        return create_app(Settings(**overrides), registry=registry)

    return _make


def asgi_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
