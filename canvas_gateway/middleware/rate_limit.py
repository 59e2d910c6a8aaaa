"""Per-client rate limiting for the RPC and stream endpoints.

Fixed window keyed by client address: each bucket holds a request count and
the moment its window resets.  A client may therefore burst up to twice the
limit across a window boundary; that is accepted behaviour.

Default: 60 requests per 60 s window.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class RateLimitBucket:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window rate limiter keyed by client identifier.

    Bucket updates are serialised with an asyncio.Lock.

    Attributes:
        window_ms: Window length in milliseconds.
        max_requests: Requests allowed per client per window.
        bypass: Keep tracking buckets but never reject.
    """

    def __init__(
        self,
        window_ms: int = 60_000,
        max_requests: int = 60,
        bypass: bool = False,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.bypass = bypass
        self._clock = clock
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._lock = asyncio.Lock()

    async def check_rate_limit(self, key: str) -> tuple[bool, int | None]:
        """Count a request from *key* and decide whether it may proceed.

        Returns:
            (allowed, retry_after) – *retry_after* is ``None`` when allowed,
            otherwise the whole number of seconds (at least 1) until the
            client's window resets.
        """
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)

            if bucket is None or now >= bucket.reset_at:
                self._buckets[key] = RateLimitBucket(count=1, reset_at=now + self.window_ms)
                return True, None

            if bucket.count + 1 > self.max_requests and not self.bypass:
                retry_after = max(1, math.ceil((bucket.reset_at - now) / 1000))
                return False, retry_after

            bucket.count += 1
            return True, None

    def bucket(self, key: str) -> RateLimitBucket | None:
        return self._buckets.get(key)

    async def reset(self, key: str | None = None) -> None:
        """Reset counters.  If *key* is ``None``, reset everything."""
        async with self._lock:
            if key:
                self._buckets.pop(key, None)
            else:
                self._buckets.clear()
