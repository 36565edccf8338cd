"""
Signal Throttle
Per-symbol daily cap and cooldown between emitted signals.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz

from ..config.scanner_config import ThrottleConfig

logger = logging.getLogger(__name__)


@dataclass
class ThrottleState:
    """Mutable throttle bookkeeping for one symbol"""
    last_signal_timestamp: Optional[datetime] = None
    signal_count_today: int = 0
    day_boundary: Optional[datetime] = None  # next local midnight, UTC


def next_local_midnight(now: datetime, zone) -> datetime:
    """First midnight in zone strictly after now, returned in UTC."""
    local = now.astimezone(zone)
    midnight = zone.localize(datetime.combine(local.date() + timedelta(days=1), time(0, 0)))
    return midnight.astimezone(timezone.utc)


class SignalThrottle:
    """
    Throttles signals for one symbol.

    check() only mutates state to roll the day over; record() commits an
    accepted signal. Timestamps must be timezone-aware (naive means UTC).
    """

    def __init__(self, config: Optional[ThrottleConfig] = None, state: Optional[ThrottleState] = None):
        """
        Initialize throttle.

        Args:
            config: Daily cap, cooldown and reset zone
            state: Existing state to continue from
        """
        self.config = config or ThrottleConfig()
        self.zone = pytz.timezone(self.config.timezone)
        self.state = state or ThrottleState()
        self._cooldown = timedelta(seconds=self.config.cooldown_seconds)

    @staticmethod
    def _aware(now: datetime) -> datetime:
        return now.replace(tzinfo=timezone.utc) if now.tzinfo is None else now

    def _rollover(self, now: datetime) -> None:
        state = self.state
        if state.day_boundary is None:
            state.day_boundary = next_local_midnight(now, self.zone)
        elif now >= state.day_boundary:
            logger.debug(f"Throttle day rollover at {state.day_boundary.isoformat()}")
            state.signal_count_today = 0
            state.day_boundary = next_local_midnight(now, self.zone)

    def check(self, now: datetime) -> Tuple[bool, str]:
        """
        Whether a signal may be emitted at now.

        Returns:
            Tuple of (allowed, reason)
        """
        now = self._aware(now)
        self._rollover(now)
        state = self.state

        if state.signal_count_today >= self.config.max_signals_per_day:
            return False, f"daily limit reached ({state.signal_count_today}/{self.config.max_signals_per_day})"

        if state.last_signal_timestamp is not None:
            elapsed = now - state.last_signal_timestamp
            if elapsed < self._cooldown:
                return False, f"cooldown active ({elapsed.total_seconds():.0f}s < {self._cooldown.total_seconds():.0f}s)"

        return True, "ok"

    def record(self, now: datetime) -> None:
        """Commit an emitted signal."""
        now = self._aware(now)
        self._rollover(now)
        self.state.signal_count_today += 1
        self.state.last_signal_timestamp = now

    def try_acquire(self, now: datetime) -> Tuple[bool, str]:
        """check() and, when allowed, record() in one step."""
        allowed, reason = self.check(now)
        if allowed:
            self.record(now)
        return allowed, reason
