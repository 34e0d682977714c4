"""Rate limit state for the remote API.

This module parses x-ratelimit-* response headers into an immutable
RateLimitState and provides pure helpers for reasoning about it.
"""

from .monitor import RateLimitMonitor
from .schemas import (
    RATE_LIMIT_HEADERS,
    RateLimitState,
    RateLimitStatus,
    parse_rate_limit_headers,
)
from .utils import (
    batch_delay_ms,
    estimate_requests_per_second,
    format_rate_limit_state,
    get_rate_limit_info,
    is_rate_limit_error,
    optimal_batch_size,
    quota_state_from_error,
    should_pause,
    should_throttle,
    status_message,
    throttle_delay_ms,
    usage_percent,
    wait_for_rate_limit,
    wait_time_ms,
    will_exceed,
)

__all__ = [
    # State
    "RATE_LIMIT_HEADERS",
    "RateLimitState",
    "RateLimitStatus",
    "parse_rate_limit_headers",
    # Monitoring
    "RateLimitMonitor",
    # Status utilities
    "batch_delay_ms",
    "estimate_requests_per_second",
    "format_rate_limit_state",
    "get_rate_limit_info",
    "is_rate_limit_error",
    "optimal_batch_size",
    "quota_state_from_error",
    "should_pause",
    "should_throttle",
    "status_message",
    "throttle_delay_ms",
    "usage_percent",
    "wait_for_rate_limit",
    "wait_time_ms",
    "will_exceed",
]
