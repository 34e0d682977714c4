"""Bounded retries for requests that exceed the remote quota.

Components:
- RetryPolicy: immutable retry budget and observers
- RetryCoordinator: reissues captured requests after HTTP 429
- with_rate_limit: retries any async callable raising RateLimitError
"""

from .coordinator import RetryCoordinator, RetryPhase
from .decorator import with_rate_limit
from .policy import QuotaHitCallback, RetryCallback, RetryPolicy

__all__ = [
    "QuotaHitCallback",
    "RetryCallback",
    "RetryCoordinator",
    "RetryPhase",
    "RetryPolicy",
    "with_rate_limit",
]
