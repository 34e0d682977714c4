"""Test fixtures for the quota coordinator."""

from .executors import FakeResponse, ScriptedExecutor, SleepRecorder, quota_error, server_error
from .rate_limit_responses import (
    HEADERS_EXHAUSTED,
    HEADERS_HEALTHY,
    HEADERS_QUOTA_EXCEEDED,
    HEADERS_STATUS,
    HEADERS_WARNING,
    NOW,
    make_rate_limit_headers,
)

__all__ = [
    # Executor seam doubles
    "FakeResponse",
    "ScriptedExecutor",
    "SleepRecorder",
    "quota_error",
    "server_error",
    # Rate limit headers
    "HEADERS_EXHAUSTED",
    "HEADERS_HEALTHY",
    "HEADERS_QUOTA_EXCEEDED",
    "HEADERS_STATUS",
    "HEADERS_WARNING",
    "NOW",
    "make_rate_limit_headers",
]
