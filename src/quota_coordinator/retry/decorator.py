"""Rate limit retries for arbitrary async callables.

Unlike RetryCoordinator, which replays a captured request, this wraps an
operation and replays it by calling it again. The wrapped callable must
be safe to invoke more than once.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, ParamSpec, TypeVar, overload

from quota_coordinator.logging import get_logger
from quota_coordinator.rate_limit.utils import quota_state_from_error, wait_time_ms

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

SleepFunc = Callable[[float], Awaitable[Any]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@overload
def with_rate_limit(
    func: Callable[P, Awaitable[R]],
    *,
    max_retries: int = ...,
    sleep: SleepFunc = ...,
    clock: Clock = ...,
) -> Callable[P, Awaitable[R]]: ...


@overload
def with_rate_limit(
    func: None = None,
    *,
    max_retries: int = ...,
    sleep: SleepFunc = ...,
    clock: Clock = ...,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]: ...


def with_rate_limit(
    func: Callable[P, Awaitable[R]] | None = None,
    *,
    max_retries: int = 3,
    sleep: SleepFunc = asyncio.sleep,
    clock: Clock = _utcnow,
) -> Any:
    """Retry an async callable while it fails on the remote quota.

    Usage:
        @with_rate_limit
        async def fetch_groups() -> list[Group]: ...

        @with_rate_limit(max_retries=5)
        async def fetch_subscribers() -> list[Subscriber]: ...

        get_fields = with_rate_limit(api.get_fields, max_retries=2)

    Attempts run from 0 to ``max_retries`` inclusive. A quota failure (a
    RateLimitError, or any error with HTTP status 429) with attempts left
    waits for its state, then calls again.
    Any other error, and the last attempt's error, propagates.

    Args:
        func: Async callable to wrap (omit to use as a decorator factory)
        max_retries: Retries after the first call
        sleep: Async sleep used for waits (seconds)
        clock: Source of "now" for wait calculations

    Returns:
        Wrapped callable, or a decorator when ``func`` is omitted
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt = 0
            while True:
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    now = clock()
                    state = quota_state_from_error(e, now)
                    if state is None or attempt >= max_retries:
                        raise

                    delay_ms = wait_time_ms(state, now)
                    logger.warning(
                        "Rate limit hit (attempt {attempt}/{total}). Waiting {delay_ms}ms",
                        event="decorator.retry",
                        function=getattr(fn, "__qualname__", repr(fn)),
                        attempt=attempt + 1,
                        total=max_retries + 1,
                        delay_ms=delay_ms,
                        retry_after_seconds=state.retry_after_seconds,
                    )
                    if delay_ms > 0:
                        await sleep(delay_ms / 1000)
                    attempt += 1

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
