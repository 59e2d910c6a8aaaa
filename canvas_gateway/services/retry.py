"""Pure retry / backoff helpers for upstream calls (no network access)."""

from __future__ import annotations

import math
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

ERROR_BODY_SNIPPET_LIMIT = 200
TRUNCATION_MARKER = "…"
JITTER_RATIO = 0.25


def is_retryable_status(status: int) -> bool:
    """429 and every 5xx are transient; any other error status is final."""
    return status == 429 or status >= 500


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait according to a ``Retry-After`` header.

    Accepts a finite, non-negative number of seconds or an HTTP-date.  Returns
    ``None`` when the header is absent, unparsable, or names a moment
    that has already passed.
    """
    if not value:
        return None
    value = value.strip()

    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if math.isfinite(seconds) and seconds >= 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    diff = (when - now).total_seconds()
    return diff if diff > 0 else None


def calculate_backoff(
    base_delay: float,
    attempt_index: int,
    retry_after: float | None = None,
    rng: random.Random | None = None,
) -> float:
    """Wait before retry number *attempt_index* (1-based).

    A server-provided ``retry_after`` wins.  Otherwise
    ``base_delay * 2 ** (attempt_index - 1)`` plus up to 25% jitter.
    """
    if retry_after is not None:
        return retry_after
    if attempt_index <= 0:
        return 0.0
    backoff = base_delay * (2 ** (attempt_index - 1))
    jitter = (rng or random).random() * JITTER_RATIO * backoff
    return backoff + jitter


def extract_snippet(body: str | None) -> str | None:
    """Trim an error body to at most 200 characters plus a truncation marker."""
    if not body:
        return None
    trimmed = body.strip()
    if not trimmed:
        return None
    if len(trimmed) <= ERROR_BODY_SNIPPET_LIMIT:
        return trimmed
    return trimmed[:ERROR_BODY_SNIPPET_LIMIT] + TRUNCATION_MARKER
