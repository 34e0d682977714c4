"""Quota coordinator exceptions.

Hierarchy:
    QuotaCoordinatorError
    ├── TransportError            opaque executor failure, never retried here
    │   └── ApiError              HTTP error response (status code + headers)
    └── RateLimitError            quota exceeded, carries a RateLimitState
        └── RateLimitExhaustedError
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from quota_coordinator.rate_limit.schemas import RateLimitState, parse_rate_limit_headers

QUOTA_EXCEEDED_STATUS = 429


class QuotaCoordinatorError(Exception):
    """Base exception for quota coordinator errors."""

    pass


class TransportError(QuotaCoordinatorError):
    """Raised when the request executor fails to produce a response."""

    pass


class ApiError(TransportError):
    """Raised by an executor when the remote API answers with an error status."""

    def __init__(
        self,
        status_code: int,
        headers: Mapping[str, str] | None = None,
        detail: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers: dict[str, str] = {k.lower(): v for k, v in (headers or {}).items()}
        self.detail = detail
        super().__init__(f"{status_code}: {detail}" if detail else f"HTTP {status_code}")

    @property
    def is_quota_exceeded(self) -> bool:
        """Whether this error is a 429 Too Many Requests."""
        return self.status_code == QUOTA_EXCEEDED_STATUS


class RateLimitError(QuotaCoordinatorError):
    """Raised when the remote quota is exceeded.

    Always carries a state: either the one parsed from the 429 response,
    or a conservative fallback (remaining=0, reset one window away) when
    the response had no rate limit headers.
    """

    is_rate_limit_error = True
    status_code = QUOTA_EXCEEDED_STATUS

    def __init__(
        self,
        state: RateLimitState,
        *,
        headers_present: bool,
        message: str | None = None,
    ) -> None:
        if message is None:
            if headers_present:
                message = f"Rate limit exceeded. Retry after {state.retry_after_seconds} seconds."
            else:
                message = "Rate limit exceeded. Please try again later."
        super().__init__(message)
        self.state = state
        self.headers_present = headers_present

    @classmethod
    def from_error(
        cls,
        error: BaseException,
        *,
        now: datetime | None = None,
        fallback_limit: int = 60,
        fallback_window_seconds: int = 60,
        **kwargs: Any,
    ) -> RateLimitError:
        """Build a rate limit error from a failed response.

        Args:
            error: The quota-exceeded failure (usually an ApiError)
            now: Reference time for the fallback state
            fallback_limit: Assumed quota when headers are absent
            fallback_window_seconds: Assumed window when headers are absent
            **kwargs: Extra constructor arguments for subclasses

        Returns:
            Error of this class carrying the best known state
        """
        state = parse_rate_limit_headers(getattr(error, "headers", None))
        if state is not None:
            return cls(state, headers_present=True, **kwargs)
        fallback = RateLimitState.fallback(
            now, limit=fallback_limit, window_seconds=fallback_window_seconds
        )
        return cls(fallback, headers_present=False, **kwargs)


class RateLimitExhaustedError(RateLimitError):
    """Raised when a request still hits the quota after the retry budget.

    ``attempts`` counts every issue of the request, the first one included.
    """

    def __init__(
        self,
        state: RateLimitState,
        *,
        headers_present: bool,
        attempts: int = 0,
        message: str | None = None,
    ) -> None:
        super().__init__(state, headers_present=headers_present, message=message)
        self.attempts = attempts


def is_quota_exceeded(error: BaseException) -> bool:
    """Classify a failure as quota-exceeded (HTTP 429, exclusively)."""
    return getattr(error, "status_code", None) == QUOTA_EXCEEDED_STATUS
