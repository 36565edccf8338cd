"""
Unit Tests for the Signal Throttle
==================================
Run with: pytest stratscan/tests/unit/test_signal_throttle.py -v
"""
import pytest
from datetime import datetime, timedelta, timezone

import pytz

from stratscan.config.scanner_config import ThrottleConfig
from stratscan.services.signal_throttle import SignalThrottle, ThrottleState, next_local_midnight
from stratscan.tests.mocks.fixtures import eastern


NEW_YORK = pytz.timezone("America/New_York")


@pytest.mark.unit
class TestDailyLimit:

    def test_second_signal_same_day_rejected(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=1, cooldown_seconds=0))

        assert throttle.try_acquire(eastern(2026, 3, 2, 10, 0))[0]
        allowed, reason = throttle.try_acquire(eastern(2026, 3, 2, 15, 0))
        assert not allowed
        assert "daily limit" in reason

    def test_next_day_accepted(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=1, cooldown_seconds=0))

        throttle.try_acquire(eastern(2026, 3, 2, 10, 0))
        assert throttle.try_acquire(eastern(2026, 3, 3, 9, 31))[0]
        assert throttle.state.signal_count_today == 1

    def test_resets_at_local_midnight(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=2, cooldown_seconds=0))
        throttle.record(eastern(2026, 3, 2, 23, 0))
        throttle.record(eastern(2026, 3, 2, 23, 10))

        assert not throttle.check(eastern(2026, 3, 2, 23, 59))[0]
        assert throttle.check(eastern(2026, 3, 3, 0, 1))[0]

    def test_check_does_not_count(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=1, cooldown_seconds=0))
        for _ in range(3):
            assert throttle.check(eastern(2026, 3, 2, 10, 0))[0]
        assert throttle.state.signal_count_today == 0


@pytest.mark.unit
class TestCooldown:

    def test_cooldown_blocks_until_elapsed(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=10, cooldown_seconds=300))
        start = eastern(2026, 3, 2, 10, 0)
        throttle.record(start)

        allowed, reason = throttle.check(start + timedelta(minutes=4))
        assert not allowed
        assert "cooldown" in reason
        assert throttle.check(start + timedelta(minutes=5))[0]

    def test_naive_timestamps_are_utc(self):
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=10, cooldown_seconds=300))
        throttle.record(datetime(2026, 3, 2, 15, 0))
        assert not throttle.check(datetime(2026, 3, 2, 15, 2, tzinfo=timezone.utc))[0]

    def test_continues_from_existing_state(self):
        state = ThrottleState(signal_count_today=10, day_boundary=eastern(2026, 3, 3, 0, 0))
        throttle = SignalThrottle(ThrottleConfig(max_signals_per_day=10), state)
        assert not throttle.check(eastern(2026, 3, 2, 12, 0))[0]


@pytest.mark.unit
class TestLocalMidnight:

    def test_standard_time(self):
        midnight = next_local_midnight(eastern(2026, 3, 2, 23, 59), NEW_YORK)
        assert midnight == datetime(2026, 3, 3, 5, 0, tzinfo=timezone.utc)

    def test_across_dst_start(self):
        # Clocks spring forward on 2026-03-08; that midnight is still EST
        assert next_local_midnight(eastern(2026, 3, 7, 12, 0), NEW_YORK) == datetime(
            2026, 3, 8, 5, 0, tzinfo=timezone.utc
        )
        assert next_local_midnight(eastern(2026, 3, 8, 12, 0), NEW_YORK) == datetime(
            2026, 3, 9, 4, 0, tzinfo=timezone.utc
        )

    def test_strictly_after(self):
        at_midnight = eastern(2026, 3, 3, 0, 0)
        assert next_local_midnight(at_midnight, NEW_YORK) > at_midnight
