"""Retry policy for quota-exceeded requests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from quota_coordinator.config import RetryConfig, get_settings
from quota_coordinator.rate_limit.schemas import RateLimitState

QuotaHitCallback = Callable[[RateLimitState], None]
RetryCallback = Callable[[int, RateLimitState], None]


class RetryPolicy(BaseModel):
    """Immutable retry budget and observers for one RetryCoordinator.

    Observers:
        on_quota_hit(state): first quota hit of a call sequence
        on_retry(attempt, state): before every reissue, attempt counts from 1
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_attempts: int = Field(default=3, ge=0, description="Reissues allowed after a 429")
    base_delay_ms: int = Field(default=1000, ge=0, description="Base backoff in milliseconds")
    on_quota_hit: QuotaHitCallback | None = Field(default=None, exclude=True)
    on_retry: RetryCallback | None = Field(default=None, exclude=True)

    @classmethod
    def from_config(
        cls,
        config: RetryConfig | None = None,
        *,
        on_quota_hit: QuotaHitCallback | None = None,
        on_retry: RetryCallback | None = None,
    ) -> Self:
        """Build a policy from retry configuration.

        Args:
            config: Retry configuration (uses settings if not provided)
            on_quota_hit: Observer for the first quota hit per call
            on_retry: Observer for every retry

        Returns:
            RetryPolicy instance
        """
        config = config or get_settings().retry
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            on_quota_hit=on_quota_hit,
            on_retry=on_retry,
        )

    def backoff_ms(self, attempt: int, state: RateLimitState | None) -> int:
        """Delay before the reissue that follows failed ``attempt``.

        With rate limit headers the server's retry-after is honoured plus
        the base delay; without them the base delay doubles per attempt.
        """
        if state is not None:
            return state.retry_after_seconds * 1000 + self.base_delay_ms
        return (2**attempt) * self.base_delay_ms
