"""Unit tests for RateLimitMonitor.

These tests verify state replacement from headers, threshold callbacks,
and the query helpers built on the latest state.
"""

from datetime import timedelta

import pytest

from quota_coordinator.config import RateLimitConfig
from quota_coordinator.rate_limit.monitor import RateLimitMonitor
from quota_coordinator.rate_limit.schemas import RateLimitState, RateLimitStatus
from tests.fixtures.rate_limit_responses import (
    HEADERS_EXHAUSTED,
    HEADERS_HEALTHY,
    HEADERS_PARTIAL,
    HEADERS_STATUS,
    HEADERS_WARNING,
    NOW,
    make_rate_limit_headers,
)


@pytest.fixture
def monitor() -> RateLimitMonitor:
    """Monitor with default thresholds."""
    return RateLimitMonitor(RateLimitConfig())


class TestMonitorInit:
    """Tests for monitor initialization."""

    def test_starts_without_state(self, monitor: RateLimitMonitor) -> None:
        """No state until a response carries headers."""
        assert monitor.state is None
        assert monitor.observed_at is None
        assert monitor.get_status() == RateLimitStatus.HEALTHY

    def test_uses_settings_when_no_config(self) -> None:
        """Config defaults come from settings."""
        monitor = RateLimitMonitor()

        assert monitor.optimal_batch_size() == 50


class TestUpdateFromHeaders:
    """Tests for passive tracking."""

    def test_complete_headers_update_state(self, monitor: RateLimitMonitor) -> None:
        """Parsed state becomes the tracked state."""
        state = monitor.update_from_headers(HEADERS_STATUS)

        assert state is not None
        assert monitor.state == state
        assert monitor.observed_at is not None

    def test_incomplete_headers_keep_state(self, monitor: RateLimitMonitor) -> None:
        """Responses without complete headers leave the state alone."""
        monitor.update_from_headers(HEADERS_HEALTHY)
        before = monitor.state

        assert monitor.update_from_headers(HEADERS_PARTIAL) is None
        assert monitor.update_from_headers(None) is None
        assert monitor.state is before

    def test_states_replace_not_merge(self, monitor: RateLimitMonitor) -> None:
        """Each response replaces the previous state wholesale."""
        monitor.update_from_headers(HEADERS_HEALTHY)
        monitor.update_from_headers(
            make_rate_limit_headers(remaining=40, limit=100, reset_in_seconds=5)
        )

        assert monitor.state is not None
        assert monitor.state.limit == 100
        assert monitor.state.remaining == 40


class TestQueries:
    """Tests for monitor query methods."""

    def test_should_pause_unknown(self, monitor: RateLimitMonitor) -> None:
        """Never pause without state."""
        assert monitor.should_pause() is False

    def test_should_pause_uses_config_threshold(self) -> None:
        """The pause threshold comes from config."""
        monitor = RateLimitMonitor(RateLimitConfig(pause_threshold=20))
        monitor.update_from_headers(HEADERS_STATUS)

        assert monitor.should_pause() is True

    def test_optimal_batch_size(self) -> None:
        """Batch size respects the configured maximum."""
        monitor = RateLimitMonitor(RateLimitConfig(max_batch_size=3))
        monitor.update_from_headers(HEADERS_HEALTHY)

        assert monitor.optimal_batch_size() == 3

    def test_wait_time(self, monitor: RateLimitMonitor) -> None:
        """Wait time is computed from the tracked state."""
        assert monitor.wait_time_ms(NOW) == 0

        monitor.update_from_headers(HEADERS_EXHAUSTED)

        assert monitor.wait_time_ms(NOW) == 60_000
        assert monitor.wait_time_ms(NOW + timedelta(minutes=2)) == 0

    def test_status_uses_config_warning_threshold(self) -> None:
        """Warning threshold comes from config."""
        monitor = RateLimitMonitor(RateLimitConfig(warning_remaining=20))
        monitor.update_from_headers(HEADERS_STATUS)

        assert monitor.get_status() == RateLimitStatus.WARNING


class TestThresholdCallbacks:
    """Tests for status degradation callbacks."""

    def test_fires_on_degradation(self, monitor: RateLimitMonitor) -> None:
        """Callbacks fire when status worsens."""
        seen: list[RateLimitStatus] = []
        monitor.on_threshold_crossed(lambda state, status: seen.append(status))

        monitor.update_from_headers(HEADERS_HEALTHY)
        monitor.update_from_headers(HEADERS_WARNING)
        monitor.update_from_headers(HEADERS_EXHAUSTED)

        assert seen == [RateLimitStatus.WARNING, RateLimitStatus.EXHAUSTED]

    def test_not_fired_on_improvement(self, monitor: RateLimitMonitor) -> None:
        """Recovery does not fire callbacks."""
        seen: list[RateLimitStatus] = []
        monitor.on_threshold_crossed(lambda state, status: seen.append(status))

        monitor.update_from_headers(HEADERS_EXHAUSTED)
        monitor.update_from_headers(HEADERS_HEALTHY)

        assert seen == [RateLimitStatus.EXHAUSTED]

    def test_callback_receives_state(self, monitor: RateLimitMonitor) -> None:
        """Callbacks get the new state."""
        states: list[RateLimitState] = []
        monitor.on_threshold_crossed(lambda state, status: states.append(state))

        monitor.update_from_headers(HEADERS_WARNING)

        assert states == [monitor.state]

    def test_callback_error_is_contained(self, monitor: RateLimitMonitor) -> None:
        """A failing callback does not break tracking or other callbacks."""
        seen: list[RateLimitStatus] = []

        def broken(state: RateLimitState, status: RateLimitStatus) -> None:
            raise RuntimeError("callback failed")

        monitor.on_threshold_crossed(broken)
        monitor.on_threshold_crossed(lambda state, status: seen.append(status))

        monitor.update_from_headers(HEADERS_EXHAUSTED)

        assert seen == [RateLimitStatus.EXHAUSTED]
        assert monitor.state is not None

    def test_remove_callback(self, monitor: RateLimitMonitor) -> None:
        """Removed callbacks are not called."""
        seen: list[RateLimitStatus] = []

        def callback(state: RateLimitState, status: RateLimitStatus) -> None:
            seen.append(status)

        monitor.on_threshold_crossed(callback)
        assert monitor.remove_callback(callback) is True
        assert monitor.remove_callback(callback) is False

        monitor.update_from_headers(HEADERS_EXHAUSTED)

        assert seen == []


class TestObservability:
    """Tests for reset and export."""

    def test_to_dict_without_state(self, monitor: RateLimitMonitor) -> None:
        """Untracked monitor exports a minimal record."""
        assert monitor.to_dict() == {"tracking": False, "state": None}

    def test_to_dict_with_state(self, monitor: RateLimitMonitor) -> None:
        """Tracked monitor exports health and the formatted state."""
        monitor.update_from_headers(HEADERS_STATUS)

        data = monitor.to_dict()

        assert data["tracking"] is True
        assert data["health"] == "healthy"
        assert data["state"]["remaining"] == 15
        assert data["state"]["usagePercent"] == 75

    def test_reset(self, monitor: RateLimitMonitor) -> None:
        """Reset forgets state and status history."""
        seen: list[RateLimitStatus] = []
        monitor.on_threshold_crossed(lambda state, status: seen.append(status))
        monitor.update_from_headers(HEADERS_EXHAUSTED)

        monitor.reset()
        monitor.update_from_headers(HEADERS_EXHAUSTED)

        assert monitor.state is not None
        assert seen == [RateLimitStatus.EXHAUSTED, RateLimitStatus.EXHAUSTED]
