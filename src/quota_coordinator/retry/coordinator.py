"""Bounded retry of quota-exceeded requests.

A request that fails with HTTP 429 is reissued unchanged after a backoff,
up to ``RetryPolicy.max_attempts`` times. Any other failure propagates
untouched. When the budget runs out a RateLimitExhaustedError carrying
the best known quota state is raised.

Phases of one call:
    ATTEMPTING -> SUCCEEDED
    ATTEMPTING -> WAITING -> ATTEMPTING ...
    ATTEMPTING -> EXHAUSTED
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from quota_coordinator.exceptions import RateLimitExhaustedError, is_quota_exceeded
from quota_coordinator.logging import bind_request
from quota_coordinator.rate_limit.schemas import RateLimitState, parse_rate_limit_headers
from quota_coordinator.rate_limit.utils import format_rate_limit_state

from .policy import RetryPolicy

if TYPE_CHECKING:
    from loguru import Logger

    from quota_coordinator.executor import ApiResponse, CapturedRequest, RequestExecutor

SleepFunc = Callable[[float], Awaitable[Any]]
Clock = Callable[[], datetime]


class RetryPhase(StrEnum):
    """Phase of a retried call."""

    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RetryCoordinator:
    """Reissues captured requests that hit the remote quota.

    Usage:
        policy = RetryPolicy(
            max_attempts=3,
            on_quota_hit=lambda state: alert(status_message(state)),
        )
        coordinator = RetryCoordinator(executor, policy)

        response = await coordinator.execute(CapturedRequest("GET", "groups"))

    The coordinator holds no per-call state, so one instance can serve
    independent call chains concurrently. It does not protect the
    aggregate request rate across those chains.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFunc = asyncio.sleep,
        logger: Logger | None = None,
        clock: Clock = _utcnow,
        fallback_limit: int = 60,
        fallback_window_seconds: int = 60,
    ) -> None:
        """Initialize the retry coordinator.

        Args:
            executor: Executor used to issue and reissue captured requests
            policy: Retry policy (built from settings if not provided)
            sleep: Async sleep used for backoff (seconds)
            logger: Logger for rate limit events (request-bound logger if not provided)
            clock: Source of "now" for fallback states
            fallback_limit: Assumed quota when a 429 carries no headers
            fallback_window_seconds: Assumed window when a 429 carries no headers
        """
        self._executor = executor
        self._policy = policy or RetryPolicy.from_config()
        self._sleep = sleep
        self._logger = logger
        self._clock = clock
        self._fallback_limit = fallback_limit
        self._fallback_window_seconds = fallback_window_seconds

    @property
    def policy(self) -> RetryPolicy:
        """The retry policy (read-only)."""
        return self._policy

    async def execute(self, request: CapturedRequest) -> ApiResponse:
        """Issue a request, retrying while it fails with HTTP 429.

        Args:
            request: Captured request to issue

        Returns:
            The first successful response

        Raises:
            RateLimitExhaustedError: If every attempt hit the quota
            Exception: Any non-429 failure, unchanged
        """
        try:
            return await self._executor.execute(request)
        except Exception as e:
            if not is_quota_exceeded(e):
                raise
            return await self.recover(e, request)

    async def recover(self, error: BaseException, request: CapturedRequest) -> ApiResponse:
        """Recover from a failure of the request's first attempt.

        Args:
            error: The failure raised by the first attempt
            request: The captured request that failed

        Returns:
            Response of the first successful reissue

        Raises:
            RateLimitExhaustedError: If the budget runs out
            BaseException: ``error`` itself, or a later failure, when not a 429
        """
        log = self._logger or bind_request(request.method, request.path)
        quota_hit_notified = False
        attempt = 0
        failure: BaseException = error

        while True:
            if not is_quota_exceeded(failure):
                raise failure

            state = parse_rate_limit_headers(getattr(failure, "headers", None))

            if attempt >= self._policy.max_attempts:
                raise self._exhausted(state, attempt + 1, log) from failure

            # WAITING
            if state is not None:
                if not quota_hit_notified:
                    quota_hit_notified = True
                    log.warning(
                        "Rate limit hit",
                        event="rate_limit.hit",
                        phase=RetryPhase.WAITING.value,
                        **format_rate_limit_state(state),
                    )
                    self._notify(self._policy.on_quota_hit, state, log=log)
                self._notify(self._policy.on_retry, attempt + 1, state, log=log)
            else:
                log.warning(
                    "Rate limit hit without rate limit headers, backing off",
                    event="rate_limit.fallback",
                    phase=RetryPhase.WAITING.value,
                    attempt=attempt + 1,
                )

            delay_ms = self._policy.backoff_ms(attempt, state)
            log.info(
                "Retrying request in {delay_ms}ms (attempt {attempt}/{max_attempts})",
                event="rate_limit.retry",
                delay_ms=delay_ms,
                attempt=attempt + 1,
                max_attempts=self._policy.max_attempts,
            )
            await self._sleep(delay_ms / 1000)

            # ATTEMPTING
            attempt += 1
            try:
                response = await self._executor.execute(request)
            except Exception as e:
                failure = e
                continue

            log.debug(
                "Request succeeded after {attempt} retries",
                event="rate_limit.recovered",
                phase=RetryPhase.SUCCEEDED.value,
                attempt=attempt,
            )
            return response

    def _exhausted(
        self,
        state: RateLimitState | None,
        attempts: int,
        log: Logger,
    ) -> RateLimitExhaustedError:
        """Build the terminal error for an exhausted budget."""
        headers_present = state is not None
        if state is None:
            state = RateLimitState.fallback(
                self._clock(),
                limit=self._fallback_limit,
                window_seconds=self._fallback_window_seconds,
            )
        error = RateLimitExhaustedError(
            state,
            headers_present=headers_present,
            attempts=attempts,
        )
        log.error(
            "Rate limit retries exhausted after {attempts} attempts",
            event="rate_limit.exhausted",
            phase=RetryPhase.EXHAUSTED.value,
            attempts=attempts,
            headers_present=headers_present,
            **format_rate_limit_state(state),
        )
        return error

    @staticmethod
    def _notify(callback: Callable[..., Any] | None, *args: Any, log: Logger) -> None:
        """Invoke an observer, logging (not propagating) its failures."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            log.error("Rate limit observer failed", error=str(e))
