"""Rate limit aware front for a request executor.

RateLimitedClient is what API wrappers talk to: it issues captured
requests, keeps a RateLimitMonitor fed from response headers, and either
recovers from 429 responses automatically or hands them back as
RateLimitError for manual handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from quota_coordinator.config import Settings, get_settings
from quota_coordinator.exceptions import RateLimitError, is_quota_exceeded
from quota_coordinator.executor import ApiResponse, CapturedRequest, RequestExecutor
from quota_coordinator.logging import get_logger
from quota_coordinator.rate_limit.monitor import RateLimitMonitor
from quota_coordinator.rate_limit.utils import format_rate_limit_state
from quota_coordinator.retry.coordinator import RetryCoordinator
from quota_coordinator.retry.policy import QuotaHitCallback, RetryCallback, RetryPolicy

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class RateLimitedClient:
    """Issues captured requests with rate limit handling.

    Usage:
        async with HttpxExecutor() as executor:
            client = RateLimitedClient(
                executor,
                on_quota_hit=lambda state: print(format_rate_limit_state(state)),
            )
            response = await client.request("GET", "subscribers")
            print(client.monitor.to_dict())

    With ``enabled=False`` a 429 is raised immediately as RateLimitError so
    callers can wait and retry themselves (e.g. with ``with_rate_limit``).
    """

    def __init__(
        self,
        executor: RequestExecutor,
        *,
        settings: Settings | None = None,
        enabled: bool | None = None,
        policy: RetryPolicy | None = None,
        on_quota_hit: QuotaHitCallback | None = None,
        on_retry: RetryCallback | None = None,
        monitor: RateLimitMonitor | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            executor: Executor that issues captured requests
            settings: Settings to read defaults from (cached settings if not provided)
            enabled: Recover from 429 automatically (uses settings if not provided)
            policy: Retry policy (built from settings and observers if not provided)
            on_quota_hit: Observer for the first quota hit of each request
            on_retry: Observer for every retry
            monitor: Monitor to feed (a new one if not provided)
            sleep: Async sleep used for backoff (seconds)
        """
        settings = settings or get_settings()
        self._executor = executor
        self._rate_limit_config = settings.rate_limit
        self._enabled = settings.rate_limit.enabled if enabled is None else enabled
        self._monitor = monitor or RateLimitMonitor(settings.rate_limit)
        policy = policy or RetryPolicy.from_config(
            settings.retry,
            on_quota_hit=on_quota_hit,
            on_retry=on_retry,
        )
        self._coordinator = RetryCoordinator(
            executor,
            policy,
            sleep=sleep,
            fallback_limit=settings.rate_limit.fallback_limit,
            fallback_window_seconds=settings.rate_limit.fallback_window_seconds,
        )

    @property
    def enabled(self) -> bool:
        """Whether 429 responses are recovered automatically."""
        return self._enabled

    @property
    def monitor(self) -> RateLimitMonitor:
        """Monitor tracking the latest quota state."""
        return self._monitor

    @property
    def coordinator(self) -> RetryCoordinator:
        """Coordinator used when automatic handling is enabled."""
        return self._coordinator

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> ApiResponse:
        """Build and send a request.

        Raises:
            RateLimitError: On 429 when automatic handling is disabled
            RateLimitExhaustedError: On 429 after the retry budget
            TransportError: On any other failure
        """
        captured = CapturedRequest(
            method=method.upper(),
            path=path,
            body=body,
            headers=dict(headers or {}),
        )
        return await self.send(captured)

    async def send(self, request: CapturedRequest) -> ApiResponse:
        """Send a captured request."""
        try:
            if self._enabled:
                response = await self._coordinator.execute(request)
            else:
                response = await self._executor.execute(request)
        except Exception as e:
            if isinstance(e, RateLimitError) and e.headers_present:
                self._monitor.update(e.state)
            else:
                self._observe(getattr(e, "headers", None))
            if not self._enabled and is_quota_exceeded(e):
                raise RateLimitError.from_error(
                    e,
                    fallback_limit=self._rate_limit_config.fallback_limit,
                    fallback_window_seconds=self._rate_limit_config.fallback_window_seconds,
                ) from e
            raise

        self._observe(response.headers)
        return response

    def _observe(self, headers: Any) -> None:
        """Feed response headers to the monitor."""
        if headers is None:
            return
        state = self._monitor.update_from_headers(headers)
        if state is not None:
            logger.debug(
                "Rate limit info",
                event="rate_limit.info",
                **format_rate_limit_state(state),
            )

    def status_snapshot(self) -> dict[str, Any]:
        """Current quota view for diagnostics."""
        return {
            "enabled": self._enabled,
            "checked_at": datetime.now(UTC).isoformat(),
            **self._monitor.to_dict(),
        }
