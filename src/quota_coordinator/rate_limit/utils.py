"""Pure helpers for reasoning about a RateLimitState.

Every function here is deterministic: time-dependent helpers take an
optional ``now`` and never sleep, except ``wait_for_rate_limit`` which
awaits the injected ``sleep``. Durations are integer milliseconds.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from .schemas import RateLimitState, parse_rate_limit_headers

DEFAULT_PAUSE_THRESHOLD = 10
DEFAULT_MAX_BATCH_SIZE = 50
WARNING_REMAINING = 5
MAX_THROTTLE_DELAY_MS = 30_000
QUOTA_EXCEEDED_STATUS = 429

SleepFunc = Callable[[float], Awaitable[Any]]


def wait_time_ms(state: RateLimitState, now: datetime | None = None) -> int:
    """Calculate how long to wait before making another request.

    With requests left, the time until reset is spread over them so the
    remaining quota lasts the whole window. With none left, wait for the
    full reset.
    """
    until_reset = state.ms_until_reset(now)
    if until_reset <= 0:
        return 0
    if state.remaining > 0:
        return math.ceil(until_reset / state.remaining)
    return until_reset


def usage_percent(state: RateLimitState) -> int:
    """Percentage of the quota consumed, rounded (100 when none remain)."""
    if state.remaining == 0:
        return 100
    # round-half-up, not banker's rounding
    return math.floor(state.used / state.limit * 100 + 0.5)


def should_pause(state: RateLimitState, threshold: int = DEFAULT_PAUSE_THRESHOLD) -> bool:
    """Check if callers should pause before making more requests."""
    return state.remaining <= threshold


def will_exceed(state: RateLimitState, additional_requests: int) -> bool:
    """Check if the quota would be exceeded by ``additional_requests`` more."""
    return state.remaining < additional_requests


def optimal_batch_size(
    state: RateLimitState,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
) -> int:
    """Largest batch that leaves a safety buffer of the quota untouched.

    Buffer = 10% of the limit, at least 5 requests.

    Returns:
        Batch size in [0, max_batch_size]
    """
    buffer = max(5, math.floor(state.limit * 0.1))
    usable = max(0, state.remaining - buffer)
    return max(0, min(max_batch_size, usable))


def batch_delay_ms(
    state: RateLimitState,
    planned_operations: int,
    now: datetime | None = None,
) -> int:
    """Delay to insert between operations of an upcoming batch.

    Args:
        state: Current quota state
        planned_operations: Operations still to run
        now: Reference time

    Returns:
        0 when the quota covers every planned operation, the full time to
        reset when nothing remains, otherwise the time to reset spread
        evenly over the remaining requests.
    """
    until_reset = state.ms_until_reset(now)
    if state.remaining <= 0:
        return until_reset
    if planned_operations <= state.remaining:
        return 0
    if until_reset <= 0:
        return 0
    return math.ceil(until_reset / state.remaining)


def status_message(state: RateLimitState) -> str:
    """Human-readable description of the quota state."""
    remaining = state.remaining
    total = state.limit
    reset_time = state.reset_at.strftime("%H:%M:%S UTC")

    if remaining == 0:
        return f"Rate limit reached (0/{total}). Resets at {reset_time}"
    if remaining <= WARNING_REMAINING:
        return (
            f"Rate limit warning: Only {remaining}/{total} requests remaining. "
            f"Resets at {reset_time}"
        )
    return f"Rate limit status: {remaining}/{total} requests remaining. Resets at {reset_time}"


def format_rate_limit_state(state: RateLimitState) -> dict[str, Any]:
    """Diagnostic record for logging and callers.

    Keys: limit, remaining, resetTime (ISO-8601), retryAfterSeconds,
    usagePercent, status.
    """
    return {
        "limit": state.limit,
        "remaining": state.remaining,
        "resetTime": state.reset_at.isoformat(),
        "retryAfterSeconds": state.retry_after_seconds,
        "usagePercent": usage_percent(state),
        "status": status_message(state),
    }


def estimate_requests_per_second(
    state: RateLimitState,
    now: datetime | None = None,
    window_seconds: int = 60,
) -> float:
    """Estimate the request rate so far in the current window."""
    until_reset = state.ms_until_reset(now)
    if until_reset <= 0:
        return 0.0
    elapsed_seconds = (window_seconds * 1000 - until_reset) / 1000
    if elapsed_seconds <= 0:
        return 0.0
    return state.used / elapsed_seconds


def should_throttle(state: RateLimitState) -> bool:
    """Whether fewer than 10% of the quota (at least 1 request) remains."""
    threshold = max(1, math.floor(state.limit * 0.1))
    return state.remaining <= threshold


def throttle_delay_ms(
    state: RateLimitState,
    now: datetime | None = None,
    max_delay_ms: int = MAX_THROTTLE_DELAY_MS,
) -> int:
    """Suggested spacing between requests, capped at ``max_delay_ms``."""
    until_reset = state.ms_until_reset(now)
    if until_reset <= 0:
        return 0
    return min(until_reset // max(1, state.remaining), max_delay_ms)


def is_rate_limit_error(error: object) -> bool:
    """Check if an object is a tagged rate limit error."""
    return getattr(error, "is_rate_limit_error", False) is True


def get_rate_limit_info(error: object) -> RateLimitState | None:
    """Extract the rate limit state carried by a rate limit error."""
    if not is_rate_limit_error(error):
        return None
    state = getattr(error, "state", None)
    return state if isinstance(state, RateLimitState) else None


def quota_state_from_error(
    error: object,
    now: datetime | None = None,
    *,
    fallback_limit: int = 60,
    fallback_window_seconds: int = 60,
) -> RateLimitState | None:
    """State to wait on after a failure, or None if it was not a quota hit.

    Rate limit errors supply the state they carry. Any other failure with
    HTTP status 429 (e.g. an executor ApiError) is parsed from its headers,
    falling back to a conservative state when they are missing.
    """
    state = get_rate_limit_info(error)
    if state is not None:
        return state
    if getattr(error, "status_code", None) != QUOTA_EXCEEDED_STATUS:
        return None
    state = parse_rate_limit_headers(getattr(error, "headers", None))
    if state is not None:
        return state
    return RateLimitState.fallback(
        now, limit=fallback_limit, window_seconds=fallback_window_seconds
    )


async def wait_for_rate_limit(
    state: RateLimitState,
    *,
    now: datetime | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> int:
    """Sleep for the wait time the state calls for.

    Returns:
        Milliseconds waited (0 if no wait was needed)
    """
    delay = wait_time_ms(state, now or datetime.now(UTC))
    if delay > 0:
        await sleep(delay / 1000)
    return delay
