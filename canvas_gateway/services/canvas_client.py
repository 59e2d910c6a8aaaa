"""Canvas LMS REST client with timeouts, retry/backoff and Link pagination.

One logical call ("fetch the profile", "list every course") becomes a
sequence of HTTP attempts:

* each attempt carries ``Authorization: Bearer <token>`` and its own
  timeout, which cancels only that attempt;
* 429 / 5xx responses, timeouts and transport errors are retried while the
  budget lasts, waiting for ``Retry-After`` when the server sends one and
  exponential backoff with jitter otherwise;
* anything else, or an exhausted budget, raises a single ``UpstreamError``.

Collections are paginated through the ``rel="next"`` entry of the ``Link``
header, one page at a time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable

import httpx

from canvas_gateway.errors import (
    UpstreamConfigError,
    UpstreamError,
    UpstreamErrorKind,
    UpstreamResponseParseError,
)
from canvas_gateway.schemas.canvas import CanvasCourseSummary, CanvasUserProfile
from canvas_gateway.services.retry import (
    ERROR_BODY_SNIPPET_LIMIT,
    calculate_backoff,
    extract_snippet,
    is_retryable_status,
    parse_retry_after,
)

logger = logging.getLogger("gateway.canvas")

API_PREFIX = "/api/v1"
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 0.25
DEFAULT_TIMEOUT = 10.0

SleepFunc = Callable[[float], Awaitable[Any]]


def resolve_base_url(domain: str | None) -> str:
    """Turn ``canvas.example.com`` (with or without scheme) into the API base URL."""
    if not domain or not domain.strip():
        raise UpstreamConfigError(
            "Canvas domain was not provided. Set CANVAS_DOMAIN or pass the domain option."
        )
    normalized = re.sub(r"^https?://", "", domain.strip(), flags=re.IGNORECASE).rstrip("/")
    return f"https://{normalized}{API_PREFIX}"


def resolve_token(token: str | None) -> str:
    if not token or not token.strip():
        raise UpstreamConfigError(
            "Canvas API token was not provided. Set CANVAS_API_TOKEN or pass the token option."
        )
    return token.strip()


class CanvasClient:
    """Async client for the Canvas REST API.

    Build it once at startup and hand it to whatever needs it::

        async with CanvasClient("canvas.example.com", token) as client:
            profile = await client.get_current_user()

    Attributes:
        max_retries: Retries allowed after the first attempt.
        retry_delay: Base backoff delay in seconds.
        timeout: Per-attempt timeout in seconds (0 disables it).
    """

    def __init__(
        self,
        domain: str | None,
        token: str | None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.base_url = resolve_base_url(domain)
        self._token = resolve_token(token)
        self.max_retries = max(0, max_retries)
        self.retry_delay = max(0.0, retry_delay)
        self.timeout = timeout
        self._owns_http_client = http_client is None
        # Cancellation is done per attempt with asyncio.wait_for, so the
        # transport itself gets no timeout of its own.
        self._http = http_client or httpx.AsyncClient(timeout=None)
        self._sleep = sleep

        base = httpx.URL(self.base_url)
        self._origin = f"{base.scheme}://{base.netloc.decode('ascii')}"

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> CanvasClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_current_user(self) -> CanvasUserProfile:
        """Fetch the profile of the authenticated user."""
        data, _ = await self.get_json("/users/self/profile")
        return CanvasUserProfile.model_validate(data)

    async def list_courses(
        self, enrollment_state: str = "active", per_page: int = 50
    ) -> list[CanvasCourseSummary]:
        """List courses for the authenticated user, following every page."""
        items = await self.get_paginated(
            f"/courses?enrollment_state={enrollment_state}&per_page={per_page}"
        )
        return [CanvasCourseSummary.model_validate(item) for item in items]

    async def get_json(self, path: str) -> tuple[Any, httpx.Response]:
        """GET *path* and decode its JSON body.  An empty body decodes to ``{}``."""
        url = self.url_for(path)
        response = await self.request(url)
        raw = response.text
        if not raw:
            return {}, response
        try:
            return json.loads(raw), response
        except ValueError as exc:
            raise UpstreamResponseParseError(
                f"Failed to parse JSON from Canvas response at {url}: {exc}",
                url=str(url),
                raw_snippet=raw[:ERROR_BODY_SNIPPET_LIMIT],
            ) from exc

    async def get_paginated(self, path: str) -> list[Any]:
        """Fetch every page of a collection and concatenate the items in order.

        Pages are requested strictly one after another.  Each page gets the
        full retry budget, so a transient failure on a late page does not
        discard the earlier ones.
        """
        items: list[Any] = []
        next_path: str | None = path
        pages = 0

        while next_path:
            data, response = await self.get_json(next_path)
            pages += 1
            if isinstance(data, list):
                items.extend(data)
            else:
                items.append(data)
            next_path = self._next_page_path(response)

        logger.debug("Paginated fetch of %s returned %d items over %d pages", path, len(items), pages)
        return items

    # ------------------------------------------------------------------
    # Request machinery
    # ------------------------------------------------------------------

    def url_for(self, path: str) -> httpx.URL:
        """Resolve *path* relative to the API base, or on the API host when it is absolute."""
        if re.match(r"^https?://", path, flags=re.IGNORECASE):
            return httpx.URL(path)
        if path.startswith(API_PREFIX + "/"):
            return httpx.URL(self._origin + path)
        return httpx.URL(f"{self.base_url}/{path.lstrip('/')}")

    def _next_page_path(self, response: httpx.Response) -> str | None:
        next_link = response.links.get("next", {}).get("url")
        if not next_link:
            return None
        resolved = httpx.URL(self.base_url + "/").join(next_link)
        # Only the path and query are reused; the host is always ours.
        return resolved.raw_path.decode("ascii")

    async def request(self, url: httpx.URL, method: str = "GET") -> httpx.Response:
        """Perform *method* on *url* with retry/backoff.  Returns the first 2xx response."""
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
        }
        target = str(url)

        for attempt in range(self.max_retries + 1):
            can_retry = attempt < self.max_retries
            try:
                response = await self._attempt(method, url, headers)
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                if not can_retry:
                    raise UpstreamError(
                        f"Canvas request to {target} timed out after {self.timeout}s.",
                        kind=UpstreamErrorKind.TIMEOUT,
                        status=0,
                        url=target,
                    ) from exc
                wait = calculate_backoff(self.retry_delay, attempt + 1)
                logger.warning(
                    "Canvas request to %s timed out (attempt %d), retrying in %.3fs",
                    target,
                    attempt + 1,
                    wait,
                )
                await self._sleep(wait)
                continue
            except httpx.TransportError as exc:
                if not can_retry:
                    raise UpstreamError(
                        f"Canvas request to {target} failed: {exc}",
                        kind=UpstreamErrorKind.NETWORK,
                        status=0,
                        url=target,
                    ) from exc
                wait = calculate_backoff(self.retry_delay, attempt + 1)
                logger.warning(
                    "Canvas request to %s failed with %s (attempt %d), retrying in %.3fs",
                    target,
                    type(exc).__name__,
                    attempt + 1,
                    wait,
                )
                await self._sleep(wait)
                continue

            if response.is_success:
                return response

            status = response.status_code
            if not (can_retry and is_retryable_status(status)):
                raise UpstreamError(
                    f"Canvas request to {target} failed with status {status}.",
                    kind=UpstreamErrorKind.HTTP_STATUS,
                    status=status,
                    url=target,
                    body_snippet=extract_snippet(response.text),
                )

            retry_after = parse_retry_after(response.headers.get("retry-after"))
            wait = calculate_backoff(self.retry_delay, attempt + 1, retry_after)
            logger.warning(
                "Canvas request to %s returned %d (attempt %d), retrying in %.3fs",
                target,
                status,
                attempt + 1,
                wait,
            )
            await self._sleep(wait)

        # The loop always returns or raises on its final attempt.
        raise UpstreamError(
            f"Canvas request to {target} failed after retries.",
            kind=UpstreamErrorKind.NETWORK,
            status=0,
            url=target,
        )

    async def _attempt(self, method: str, url: httpx.URL, headers: dict[str, str]) -> httpx.Response:
        call = self._http.request(method, url, headers=headers)
        if self.timeout and self.timeout > 0:
            return await asyncio.wait_for(call, timeout=self.timeout)
        return await call
