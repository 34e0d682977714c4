"""Pydantic schemas for remote API rate limit data.

A RateLimitState is built from the x-ratelimit-* headers of exactly one
response. States are never merged: the next response produces a new state.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from quota_coordinator.logging import get_logger

logger = get_logger(__name__)

HEADER_LIMIT = "x-ratelimit-limit"
HEADER_REMAINING = "x-ratelimit-remaining"
HEADER_RESET = "x-ratelimit-reset"
HEADER_RETRY_AFTER = "x-ratelimit-retry-after"

RATE_LIMIT_HEADERS = (HEADER_LIMIT, HEADER_REMAINING, HEADER_RESET, HEADER_RETRY_AFTER)


class RateLimitStatus(StrEnum):
    """Rate limit health status.

    Mirrors the three tiers of the human-readable status message:
    - HEALTHY: more than the warning threshold remaining
    - WARNING: 1 to warning threshold (default 5) remaining
    - EXHAUSTED: 0 remaining
    """

    HEALTHY = "healthy"
    WARNING = "warning"
    EXHAUSTED = "exhausted"


class RateLimitState(BaseModel):
    """Quota snapshot parsed from one response's rate limit headers."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(gt=0, description="Maximum requests allowed per window")
    remaining: int = Field(ge=0, description="Requests remaining in current window")
    reset_at: datetime = Field(description="UTC datetime when the window resets")
    retry_after_seconds: int = Field(ge=0, description="Seconds the server asks us to wait")

    @field_validator("reset_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @model_validator(mode="after")
    def _remaining_within_limit(self) -> Self:
        if self.remaining > self.limit:
            raise ValueError(
                f"remaining ({self.remaining}) cannot exceed limit ({self.limit})"
            )
        return self

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Self | None:
        """Parse from HTTP response headers.

        All four headers must be present:
        - x-ratelimit-limit
        - x-ratelimit-remaining
        - x-ratelimit-reset
        - x-ratelimit-retry-after

        Args:
            headers: Response header mapping (lookup is case-insensitive)

        Returns:
            RateLimitState, or None if any header is missing or malformed
        """
        normalized = {str(key).lower(): value for key, value in headers.items()}
        raw = {name: normalized.get(name) for name in RATE_LIMIT_HEADERS}
        if any(value is None or not str(value).strip() for value in raw.values()):
            return None

        try:
            return cls(
                limit=int(raw[HEADER_LIMIT]),
                remaining=int(raw[HEADER_REMAINING]),
                reset_at=parse_reset(str(raw[HEADER_RESET])),
                retry_after_seconds=int(raw[HEADER_RETRY_AFTER]),
            )
        except (ValueError, ValidationError) as e:
            logger.debug(
                "Ignoring malformed rate limit headers",
                event="rate_limit.headers_invalid",
                headers=raw,
                error=str(e),
            )
            return None

    @classmethod
    def fallback(
        cls,
        now: datetime | None = None,
        *,
        limit: int = 60,
        window_seconds: int = 60,
    ) -> Self:
        """Conservative state used when a 429 arrives without headers.

        Reports the quota as spent until a full window has passed, so
        callers that wait on it never busy-loop.

        Args:
            now: Reference time (defaults to current UTC time)
            limit: Assumed quota per window
            window_seconds: Assumed seconds until reset

        Returns:
            RateLimitState with remaining=0
        """
        now = now or datetime.now(UTC)
        return cls(
            limit=limit,
            remaining=0,
            reset_at=now + timedelta(seconds=window_seconds),
            retry_after_seconds=window_seconds,
        )

    @property
    def used(self) -> int:
        """Requests consumed in the current window."""
        return self.limit - self.remaining

    def ms_until_reset(self, now: datetime | None = None) -> int:
        """Milliseconds until the window resets (0 if already past)."""
        now = now or datetime.now(UTC)
        delta = (self.reset_at - now).total_seconds() * 1000
        return max(0, int(delta))

    def get_status(self, warning_remaining: int = 5) -> RateLimitStatus:
        """Determine rate limit health status.

        Args:
            warning_remaining: Remaining count at or below which is WARNING

        Returns:
            RateLimitStatus enum value
        """
        if self.remaining == 0:
            return RateLimitStatus.EXHAUSTED
        if self.remaining <= warning_remaining:
            return RateLimitStatus.WARNING
        return RateLimitStatus.HEALTHY


def parse_reset(value: str) -> datetime:
    """Parse an x-ratelimit-reset value into an aware UTC datetime.

    Accepts a Unix epoch in seconds, an ISO-8601 timestamp or an HTTP date.

    Raises:
        ValueError: If the value matches none of the accepted forms
    """
    value = value.strip()
    try:
        return datetime.fromtimestamp(float(value), tz=UTC)
    except (OverflowError, OSError) as e:
        raise ValueError(f"reset timestamp out of range: {value!r}") from e
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"unrecognised reset timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_rate_limit_headers(headers: Mapping[str, str] | None) -> RateLimitState | None:
    """Extract a RateLimitState from response headers.

    Returns None ("no state available") when headers are absent or any of
    the four rate limit fields is missing. Partial state is never built.
    """
    if not headers:
        return None
    return RateLimitState.from_headers(headers)
