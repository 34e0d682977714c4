"""Pytest configuration and shared fixtures.

Usage Guide:
- For header parsing tests: import header dicts from tests.fixtures
- For retry/batch tests: use the ``sleep`` and ``clock`` fixtures so no
  test ever waits on the real clock
"""

from collections.abc import Callable, Iterator
from datetime import datetime

import pytest

from quota_coordinator.config import (
    BatchConfig,
    RateLimitConfig,
    RetryConfig,
    Settings,
    get_settings,
)
from quota_coordinator.rate_limit.schemas import RateLimitState
from tests.fixtures import NOW, SleepRecorder, make_rate_limit_headers


# -----------------------------------------------------------------------------
# Time Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def sleep() -> SleepRecorder:
    """Recording replacement for asyncio.sleep."""
    return SleepRecorder()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock frozen at the test epoch."""
    return lambda: NOW


# -----------------------------------------------------------------------------
# Configuration Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Ensure cached settings never leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only (no .env, fast batches)."""
    return Settings(
        _env_file=None,
        rate_limit=RateLimitConfig(),
        retry=RetryConfig(max_attempts=3, base_delay_ms=1000),
        batch=BatchConfig(batch_size=10, chunk_delay_ms=100),
    )


# -----------------------------------------------------------------------------
# State Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def make_state() -> Callable[..., RateLimitState]:
    """Factory for states parsed from headers relative to NOW."""

    def _make(**kwargs: int) -> RateLimitState:
        state = RateLimitState.from_headers(make_rate_limit_headers(**kwargs))
        assert state is not None
        return state

    return _make
