"""Rate limit coordination for calls to a fixed-quota remote API.

This package provides:
- RateLimitState parsing from x-ratelimit-* headers and pure status helpers
- RetryCoordinator: bounded reissue of requests that hit HTTP 429
- with_rate_limit: the same retry contract for any async callable
- AdaptiveBatchProcessor: sequential, fail-soft processing of many items
- RateLimitedClient / HttpxExecutor: the executor seam and its httpx adapter
"""

from .client import RateLimitedClient
from .exceptions import (
    ApiError,
    QuotaCoordinatorError,
    RateLimitError,
    RateLimitExhaustedError,
    TransportError,
    is_quota_exceeded,
)
from .executor import ApiResponse, CapturedRequest, HttpxExecutor, RequestExecutor
from .logging import configure_logging
from .pacing import AdaptiveBatchProcessor, BatchJob, BatchResult, ProgressCallback
from .rate_limit import (
    RateLimitMonitor,
    RateLimitState,
    RateLimitStatus,
    batch_delay_ms,
    estimate_requests_per_second,
    format_rate_limit_state,
    get_rate_limit_info,
    is_rate_limit_error,
    optimal_batch_size,
    parse_rate_limit_headers,
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
from .retry import RetryCoordinator, RetryPhase, RetryPolicy, with_rate_limit

__version__ = "0.1.0"

__all__ = [
    # Client & executor seam
    "ApiResponse",
    "CapturedRequest",
    "HttpxExecutor",
    "RateLimitedClient",
    "RequestExecutor",
    # Exceptions
    "ApiError",
    "QuotaCoordinatorError",
    "RateLimitError",
    "RateLimitExhaustedError",
    "TransportError",
    "is_quota_exceeded",
    # Logging
    "configure_logging",
    # Rate limit state
    "RateLimitMonitor",
    "RateLimitState",
    "RateLimitStatus",
    "parse_rate_limit_headers",
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
    # Retry
    "RetryCoordinator",
    "RetryPhase",
    "RetryPolicy",
    "with_rate_limit",
    # Batch processing
    "AdaptiveBatchProcessor",
    "BatchJob",
    "BatchResult",
    "ProgressCallback",
]
