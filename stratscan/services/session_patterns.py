"""
Session Pattern Families
Single-bar and short-sequence setups that depend on the trading session.

This service provides:
1. Base families (every open session): inside-bar breakout/breakdown,
   outside-bar follow-through, gap breakout
2. Premarket: gap continuation, volume explosion
3. Intraday: momentum continuation
4. Afterhours: range-expansion reversal

Every hit enters at the current close and is anchored at the current bar's
low (long) or high (short). Hits are scored by the confluence scorer like
any other candidate.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.scanner_config import PatternConfig
from ..models.signals import PatternDirection
from .candle_validator import Candle
from .session_scheduler import PatternFamily, SessionInfo

logger = logging.getLogger(__name__)


@dataclass
class SessionPatternHit:
    """A session-family setup on the current bar"""
    family: PatternFamily
    label: str
    direction: PatternDirection
    entry: float
    anchor: float
    base_confidence: float  # relative ranking between families
    pattern_range: float = 0.0


def _hit(family: PatternFamily, label: str, direction: PatternDirection, bar: Candle, base: float) -> SessionPatternHit:
    anchor = bar.low if direction == PatternDirection.BULLISH else bar.high
    return SessionPatternHit(
        family=family,
        label=label,
        direction=direction,
        entry=bar.close,
        anchor=anchor,
        base_confidence=base,
        pattern_range=bar.range,
    )


class SessionPatternDetector:
    """
    Runs the pattern families enabled for the current session.
    """

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    def detect(self, candles: Sequence[Candle], session: SessionInfo) -> List[SessionPatternHit]:
        """
        Detect all enabled session-family setups on the last bar.

        Args:
            candles: Candle window, oldest first
            session: Current session (decides which families run)
        """
        hits: List[SessionPatternHit] = []
        if not session.is_open or len(candles) < 2:
            return hits

        if session.allows(PatternFamily.INSIDE_OUTSIDE_BREAKOUT):
            hits.extend(self.inside_outside_breakout(candles))
        if session.allows(PatternFamily.GAP_BREAKOUT):
            hits.extend(self.gap_breakout(candles))
        if session.allows(PatternFamily.GAP_ANALYSIS):
            hits.extend(self.premarket_gap_continuation(candles))
        if session.allows(PatternFamily.VOLUME_EXPLOSION):
            hits.extend(self.volume_explosion(candles))
        if session.allows(PatternFamily.MOMENTUM_CONTINUATION):
            hits.extend(self.momentum_continuation(candles))
        if session.allows(PatternFamily.AFTERHOURS_REVERSAL):
            hits.extend(self.afterhours_reversal(candles))

        return hits

    # ==================== BASE ====================

    def inside_outside_breakout(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        """
        The previous bar is inside (or outside) the one before it and the
        current close clears its extreme by breakout_threshold.
        """
        if len(candles) < 3:
            return []
        mother, setup, bar = candles[-3], candles[-2], candles[-1]
        t = self.config.breakout_threshold
        hits = []

        if setup.high < mother.high and setup.low > mother.low:
            if bar.close > setup.high * (1 + t):
                hits.append(_hit(PatternFamily.INSIDE_OUTSIDE_BREAKOUT, "Inside Bar Bullish Breakout",
                                 PatternDirection.BULLISH, bar, 110))
            elif bar.close < setup.low * (1 - t):
                hits.append(_hit(PatternFamily.INSIDE_OUTSIDE_BREAKOUT, "Inside Bar Bearish Breakdown",
                                 PatternDirection.BEARISH, bar, 110))

        elif setup.high > mother.high and setup.low < mother.low:
            if setup.is_bullish and bar.close > setup.high * (1 + t):
                hits.append(_hit(PatternFamily.INSIDE_OUTSIDE_BREAKOUT, "Outside Bar Bullish Follow-Through",
                                 PatternDirection.BULLISH, bar, 115))
            elif setup.is_bearish and bar.close < setup.low * (1 - t):
                hits.append(_hit(PatternFamily.INSIDE_OUTSIDE_BREAKOUT, "Outside Bar Bearish Follow-Through",
                                 PatternDirection.BEARISH, bar, 115))

        return hits

    def gap_breakout(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        """Open gaps past the previous close and the close holds beyond the previous range."""
        prev, bar = candles[-2], candles[-1]
        g = self.config.gap_threshold
        if bar.open > prev.close * (1 + g) and bar.close > prev.high:
            return [_hit(PatternFamily.GAP_BREAKOUT, "Gap Up Breakout", PatternDirection.BULLISH, bar, 120)]
        if bar.open < prev.close * (1 - g) and bar.close < prev.low:
            return [_hit(PatternFamily.GAP_BREAKOUT, "Gap Down Breakdown", PatternDirection.BEARISH, bar, 120)]
        return []

    # ==================== PREMARKET ====================

    def premarket_gap_continuation(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        prev, bar = candles[-2], candles[-1]
        pct = self.config.premarket_gap_pct
        if bar.open > prev.close * (1 + pct) and bar.is_bullish:
            return [_hit(PatternFamily.GAP_ANALYSIS, "Premarket Gap Up Continuation",
                         PatternDirection.BULLISH, bar, 125)]
        if bar.open < prev.close * (1 - pct) and bar.is_bearish:
            return [_hit(PatternFamily.GAP_ANALYSIS, "Premarket Gap Down Continuation",
                         PatternDirection.BEARISH, bar, 125)]
        return []

    def volume_explosion(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        """Current volume above a multiple of the preceding bars' average."""
        period = self.config.volume_average_period
        bar = candles[-1]
        previous = candles[-period - 1:-1]
        volumes = [c.volume for c in previous]
        if bar.volume is None or not volumes or any(v is None for v in volumes):
            return []
        average = sum(volumes) / len(volumes)
        if average <= 0 or bar.volume <= average * self.config.volume_explosion_multiplier:
            return []
        if bar.is_bullish:
            return [_hit(PatternFamily.VOLUME_EXPLOSION, "Premarket High Volume Bullish",
                         PatternDirection.BULLISH, bar, 130)]
        if bar.is_bearish:
            return [_hit(PatternFamily.VOLUME_EXPLOSION, "Premarket High Volume Bearish",
                         PatternDirection.BEARISH, bar, 130)]
        return []

    # ==================== INTRADAY ====================

    def momentum_continuation(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        lookback = self.config.momentum_lookback
        if len(candles) < lookback:
            return []
        recent = candles[-lookback:]
        bar = recent[-1]
        up = sum(1 for c in recent if c.is_bullish)
        down = sum(1 for c in recent if c.is_bearish)
        if up >= self.config.momentum_min_bars and bar.is_bullish:
            return [_hit(PatternFamily.MOMENTUM_CONTINUATION, "Intraday Momentum Continuation",
                         PatternDirection.BULLISH, bar, 120)]
        if down >= self.config.momentum_min_bars and bar.is_bearish:
            return [_hit(PatternFamily.MOMENTUM_CONTINUATION, "Intraday Momentum Continuation",
                         PatternDirection.BEARISH, bar, 120)]
        return []

    # ==================== AFTERHOURS ====================

    def afterhours_reversal(self, candles: Sequence[Candle]) -> List[SessionPatternHit]:
        prev, bar = candles[-2], candles[-1]
        if bar.range <= prev.range * self.config.afterhours_range_ratio:
            return []
        if bar.is_bullish:
            return [_hit(PatternFamily.AFTERHOURS_REVERSAL, "After Hours Bullish Reversal",
                         PatternDirection.BULLISH, bar, 115)]
        if bar.is_bearish:
            return [_hit(PatternFamily.AFTERHOURS_REVERSAL, "After Hours Bearish Reversal",
                         PatternDirection.BEARISH, bar, 115)]
        return []
