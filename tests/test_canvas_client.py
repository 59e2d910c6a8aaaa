"""Tests for the resilient Canvas client against a scripted MockTransport."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from canvas_gateway.errors import (
    UpstreamConfigError,
    UpstreamError,
    UpstreamErrorKind,
    UpstreamResponseParseError,
)
from canvas_gateway.services.canvas_client import CanvasClient, resolve_base_url
from conftest import FakeCanvas, SleepRecorder, make_canvas_client

PROFILE = {
    "id": 42,
    "name": "Ada Lovelace",
    "short_name": "Ada",
    "sortable_name": "Lovelace, Ada",
    "primary_email": "ada@example.com",
    "login_id": "ada",
}


class TestConfiguration:
    def test_domain_normalisation(self):
        assert resolve_base_url("canvas.test") == "https://canvas.test/api/v1"
        assert resolve_base_url("https://canvas.test/") == "https://canvas.test/api/v1"
        assert resolve_base_url("  HTTP://canvas.test ") == "https://canvas.test/api/v1"

    def test_missing_domain(self):
        with pytest.raises(UpstreamConfigError):
            CanvasClient(None, "token")

    def test_missing_token(self):
        with pytest.raises(UpstreamConfigError):
            CanvasClient("canvas.test", "   ")


@pytest.mark.asyncio
async def test_get_current_user_sends_auth_headers():
    fake = FakeCanvas([lambda request: httpx.Response(200, json=PROFILE)])
    client = make_canvas_client(fake)

    profile = await client.get_current_user()

    assert profile.model_dump() == PROFILE
    assert len(fake.calls) == 1
    request = fake.calls[0]
    assert str(request.url) == "https://canvas.test/api/v1/users/self/profile"
    assert request.headers["Authorization"] == "Bearer token-123"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_401_raises_without_retry():
    fake = FakeCanvas([lambda request: httpx.Response(401, text="Unauthorized token")])
    client = make_canvas_client(fake, max_retries=3)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_current_user()

    error = exc_info.value
    assert error.kind is UpstreamErrorKind.HTTP_STATUS
    assert error.status == 401
    assert error.body_snippet == "Unauthorized token"
    assert error.url == "https://canvas.test/api/v1/users/self/profile"
    assert "status 401" in str(error)
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_404_is_not_retried():
    fake = FakeCanvas([lambda request: httpx.Response(404, text="")])
    client = make_canvas_client(fake, max_retries=2)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_current_user()

    assert exc_info.value.status == 404
    assert exc_info.value.body_snippet is None
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_429_with_retry_after_then_success(sleep_recorder: SleepRecorder):
    fake = FakeCanvas(
        [
            lambda request: httpx.Response(429, text="Rate limited", headers={"Retry-After": "0"}),
            lambda request: httpx.Response(200, json=[{"id": 10, "name": "Course Z", "course_code": "Z-1"}]),
        ]
    )
    client = make_canvas_client(fake, sleep_recorder, max_retries=2, retry_delay=0.001)

    courses = await client.list_courses()

    assert len(fake.calls) == 2
    assert [c.id for c in courses] == [10]
    assert sleep_recorder.waits == [0.0]


@pytest.mark.asyncio
async def test_infinite_retry_after_falls_back_to_backoff(sleep_recorder: SleepRecorder):
    fake = FakeCanvas(
        [
            lambda request: httpx.Response(503, headers={"Retry-After": "inf"}),
            lambda request: httpx.Response(200, json={"id": 1, "name": "Ada"}),
        ]
    )
    client = make_canvas_client(fake, sleep_recorder, max_retries=1, retry_delay=0.1)

    await client.get_current_user()

    assert len(sleep_recorder.waits) == 1
    assert 0.1 <= sleep_recorder.waits[0] <= 0.125


@pytest.mark.asyncio
async def test_5xx_exhaustion_reports_truncated_snippet(sleep_recorder: SleepRecorder):
    body = "Server exploded".ljust(250, "!")
    fake = FakeCanvas([lambda request: httpx.Response(500, text=body)])
    client = make_canvas_client(fake, sleep_recorder, max_retries=1, retry_delay=0.0)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_current_user()

    error = exc_info.value
    assert error.status == 500
    assert error.body_snippet is not None
    assert len(error.body_snippet) <= 201
    assert error.body_snippet.endswith("…")
    assert len(fake.calls) == 2
    assert len(sleep_recorder.waits) == 1


@pytest.mark.asyncio
async def test_backoff_waits_grow_exponentially(sleep_recorder: SleepRecorder):
    fake = FakeCanvas(
        [
            lambda request: httpx.Response(503),
            lambda request: httpx.Response(502),
            lambda request: httpx.Response(200, json=PROFILE),
        ]
    )
    client = make_canvas_client(fake, sleep_recorder, max_retries=2, retry_delay=0.1)

    await client.get_current_user()

    first, second = sleep_recorder.waits
    assert 0.1 <= first <= 0.125
    assert 0.2 <= second <= 0.25


@pytest.mark.asyncio
async def test_timeout_is_retried_then_reported(sleep_recorder: SleepRecorder):
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json=PROFILE)

    fake = FakeCanvas([slow])
    client = make_canvas_client(fake, sleep_recorder, max_retries=1, timeout=0.01)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_current_user()

    error = exc_info.value
    assert error.kind is UpstreamErrorKind.TIMEOUT
    assert error.status == 0
    assert error.url.endswith("/users/self/profile")
    assert len(fake.calls) == 2


@pytest.mark.asyncio
async def test_timeout_on_one_attempt_does_not_affect_the_next(sleep_recorder: SleepRecorder):
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json=PROFILE)

    fake = FakeCanvas([slow, lambda request: httpx.Response(200, json=PROFILE)])
    client = make_canvas_client(fake, sleep_recorder, max_retries=1, timeout=0.05)

    profile = await client.get_current_user()

    assert profile.id == 42
    assert len(fake.calls) == 2


@pytest.mark.asyncio
async def test_network_error_is_retried(sleep_recorder: SleepRecorder):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fake = FakeCanvas([refuse, lambda request: httpx.Response(200, json=PROFILE)])
    client = make_canvas_client(fake, sleep_recorder, max_retries=1, retry_delay=0.05)

    profile = await client.get_current_user()

    assert profile.name == "Ada Lovelace"
    assert len(fake.calls) == 2
    assert 0.05 <= sleep_recorder.waits[0] <= 0.0625


@pytest.mark.asyncio
async def test_network_error_exhaustion():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_canvas_client(FakeCanvas([refuse]))

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_current_user()

    assert exc_info.value.kind is UpstreamErrorKind.NETWORK
    assert exc_info.value.status == 0


@pytest.mark.asyncio
async def test_malformed_json_raises_parse_error():
    fake = FakeCanvas([lambda request: httpx.Response(200, text="<html>not json</html>")])
    client = make_canvas_client(fake)

    with pytest.raises(UpstreamResponseParseError) as exc_info:
        await client.get_current_user()

    assert exc_info.value.url.endswith("/users/self/profile")
    assert exc_info.value.raw_snippet.startswith("<html>")


@pytest.mark.asyncio
async def test_empty_body_decodes_to_empty_object():
    fake = FakeCanvas([lambda request: httpx.Response(200, text="")])
    client = make_canvas_client(fake)

    data, _ = await client.get_json("/users/self/settings")

    assert data == {}


@pytest.mark.asyncio
async def test_context_manager_closes_owned_client():
    async with CanvasClient("canvas.test", "token") as client:
        assert client.base_url == "https://canvas.test/api/v1"
    assert client._http.is_closed
