"""
Session Scheduler
Classifies a moment into the US equity session and returns the scan
parameters for it.

Sessions (America/New_York, half-open intervals):
    premarket   04:00 - 09:30
    intraday    09:30 - 16:00
    afterhours  16:00 - 20:00
    closed      everything else
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional

import pytz

from ..config.scanner_config import FACTOR_NAMES, SessionConfig
from ..models.signals import MarketSession

logger = logging.getLogger(__name__)


class PatternFamily(str, Enum):
    """Detector families a session can enable"""
    # Base families, every open session
    STRAT = "strat"
    ABCD = "abcd"
    INSIDE_OUTSIDE_BREAKOUT = "inside_outside_breakout"
    GAP_BREAKOUT = "gap_breakout"

    # Session specific
    GAP_ANALYSIS = "gap_analysis"
    VOLUME_EXPLOSION = "volume_explosion"
    MOMENTUM_CONTINUATION = "momentum_continuation"
    AFTERHOURS_REVERSAL = "afterhours_reversal"


BASE_FAMILIES = frozenset({
    PatternFamily.STRAT,
    PatternFamily.ABCD,
    PatternFamily.INSIDE_OUTSIDE_BREAKOUT,
    PatternFamily.GAP_BREAKOUT,
})

SESSION_FAMILIES = {
    MarketSession.PREMARKET: frozenset({PatternFamily.GAP_ANALYSIS, PatternFamily.VOLUME_EXPLOSION}),
    MarketSession.INTRADAY: frozenset({PatternFamily.MOMENTUM_CONTINUATION}),
    MarketSession.AFTERHOURS: frozenset({PatternFamily.AFTERHOURS_REVERSAL}),
    MarketSession.CLOSED: frozenset(),
}


@dataclass(frozen=True)
class SessionInfo:
    """Scan parameters for one tick"""
    session: MarketSession
    scan_interval: int  # seconds
    risk_multiplier: float
    api_budget_per_minute: int
    confidence: float
    enabled_pattern_families: FrozenSet[PatternFamily]
    enabled_factors: FrozenSet[str] = frozenset(FACTOR_NAMES)
    local_time: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.session != MarketSession.CLOSED

    def allows(self, family: PatternFamily) -> bool:
        return family in self.enabled_pattern_families


class SessionScheduler:
    """
    Stateless session classifier.

    Naive datetimes are treated as UTC.
    """

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.zone = pytz.timezone(self.config.timezone)
        self._premarket, self._intraday, self._afterhours, self._close = self.config.boundaries()

    def session_at(self, at: datetime) -> MarketSession:
        local = self.to_local(at)
        clock = local.time()
        if self._premarket <= clock < self._intraday:
            return MarketSession.PREMARKET
        if self._intraday <= clock < self._afterhours:
            return MarketSession.INTRADAY
        if self._afterhours <= clock < self._close:
            return MarketSession.AFTERHOURS
        return MarketSession.CLOSED

    def classify(self, at: Optional[datetime] = None) -> SessionInfo:
        """
        Build the SessionInfo for a moment (default: now).

        Args:
            at: Timezone-aware datetime, or naive UTC
        """
        if at is None:
            at = datetime.now(timezone.utc)
        session = self.session_at(at)
        name = session.value
        cfg = self.config

        families = SESSION_FAMILIES[session]
        if session != MarketSession.CLOSED:
            families = families | BASE_FAMILIES

        return SessionInfo(
            session=session,
            scan_interval=getattr(cfg, f"{name}_interval"),
            risk_multiplier=getattr(cfg, f"{name}_risk_multiplier"),
            api_budget_per_minute=getattr(cfg, f"{name}_api_budget"),
            confidence=getattr(cfg, f"{name}_confidence"),
            enabled_pattern_families=families,
            local_time=self.to_local(at),
        )

    def to_local(self, at: datetime) -> datetime:
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        return at.astimezone(self.zone)
