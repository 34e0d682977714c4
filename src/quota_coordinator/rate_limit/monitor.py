"""Rate limit monitoring from response headers.

The monitor keeps the state parsed from the most recent response that
carried rate limit headers. It never merges states: each response
replaces the previous one. State lives in memory for one process.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from quota_coordinator.config import RateLimitConfig, get_settings
from quota_coordinator.logging import get_logger

from .schemas import RateLimitState, RateLimitStatus, parse_rate_limit_headers
from .utils import format_rate_limit_state, optimal_batch_size, should_pause, wait_time_ms

logger = get_logger(__name__)

# Type for threshold callbacks
ThresholdCallback = Callable[[RateLimitState, RateLimitStatus], None]

_STATUS_ORDER = [
    RateLimitStatus.HEALTHY,
    RateLimitStatus.WARNING,
    RateLimitStatus.EXHAUSTED,
]


class RateLimitMonitor:
    """Tracks the latest quota state observed in response headers.

    Usage:
        monitor = RateLimitMonitor()
        monitor.on_threshold_crossed(lambda state, status: alert(status))

        response = await executor.execute(request)
        monitor.update_from_headers(response.headers)

        if monitor.should_pause():
            await asyncio.sleep(monitor.wait_time_ms() / 1000)
    """

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        """Initialize the rate limit monitor.

        Args:
            config: Optional rate limit configuration (uses settings if not provided)
        """
        self._config = config or get_settings().rate_limit

        self._state: RateLimitState | None = None
        self._observed_at: datetime | None = None

        self._threshold_callbacks: list[ThresholdCallback] = []
        self._previous_status = RateLimitStatus.HEALTHY

    # -------------------------------------------------------------------------
    # Passive Tracking (from Response Headers)
    # -------------------------------------------------------------------------
    def update_from_headers(self, headers: Mapping[str, str] | None) -> RateLimitState | None:
        """Replace the tracked state with the one parsed from ``headers``.

        Responses without complete rate limit headers leave the current
        state untouched.

        Args:
            headers: HTTP response headers

        Returns:
            The newly parsed state, or None if headers were incomplete
        """
        state = parse_rate_limit_headers(headers)
        if state is None:
            return None
        self.update(state)
        return state

    def update(self, state: RateLimitState) -> None:
        """Record an already parsed state."""
        self._state = state
        self._observed_at = datetime.now(UTC)
        self._check_thresholds()

    def _check_thresholds(self) -> None:
        """Fire callbacks when status degrades (e.g. HEALTHY -> WARNING)."""
        if self._state is None:
            return

        current = self.get_status()
        previous = self._previous_status
        self._previous_status = current

        if _STATUS_ORDER.index(current) <= _STATUS_ORDER.index(previous):
            return

        logger.info(
            "Rate limit status degraded from {previous} to {current}",
            previous=previous.value,
            current=current.value,
            event="rate_limit.degraded",
            **format_rate_limit_state(self._state),
        )
        for callback in self._threshold_callbacks:
            try:
                callback(self._state, current)
            except Exception as e:
                logger.error("Threshold callback failed", error=str(e))

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    @property
    def state(self) -> RateLimitState | None:
        """Latest observed state (None if no response carried headers yet)."""
        return self._state

    @property
    def observed_at(self) -> datetime | None:
        """When the latest state was recorded."""
        return self._observed_at

    def get_status(self) -> RateLimitStatus:
        """Health status of the latest state (HEALTHY if unknown)."""
        if self._state is None:
            return RateLimitStatus.HEALTHY
        return self._state.get_status(self._config.warning_remaining)

    def should_pause(self) -> bool:
        """Whether remaining requests are at or below the pause threshold."""
        if self._state is None:
            return False
        return should_pause(self._state, self._config.pause_threshold)

    def optimal_batch_size(self) -> int:
        """Batch size the latest state allows (max batch size if unknown)."""
        if self._state is None:
            return self._config.max_batch_size
        return optimal_batch_size(self._state, self._config.max_batch_size)

    def wait_time_ms(self, now: datetime | None = None) -> int:
        """Milliseconds to wait before the next request (0 if unknown)."""
        if self._state is None:
            return 0
        return wait_time_ms(self._state, now)

    # -------------------------------------------------------------------------
    # Callbacks & Observability
    # -------------------------------------------------------------------------
    def on_threshold_crossed(self, callback: ThresholdCallback) -> None:
        """Register a callback for status degradation.

        Callbacks are NOT fired on improvement (e.g. WARNING -> HEALTHY).
        """
        self._threshold_callbacks.append(callback)

    def remove_callback(self, callback: ThresholdCallback) -> bool:
        """Remove a previously registered callback.

        Returns:
            True if callback was found and removed
        """
        try:
            self._threshold_callbacks.remove(callback)
            return True
        except ValueError:
            return False

    def reset(self) -> None:
        """Forget the tracked state."""
        self._state = None
        self._observed_at = None
        self._previous_status = RateLimitStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        """Export current state as dictionary (for logging/metrics)."""
        if self._state is None:
            return {"tracking": False, "state": None}

        return {
            "tracking": True,
            "observed_at": self._observed_at.isoformat() if self._observed_at else None,
            "health": self.get_status().value,
            "should_pause": self.should_pause(),
            "optimal_batch_size": self.optimal_batch_size(),
            "state": format_rate_limit_state(self._state),
        }
