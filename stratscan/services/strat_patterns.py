"""
Strat Pattern Recognizer
Matches the bar types of a 3-candle window against the named Strat sequences
and scores them.

This service provides:
1. Reversals: 2D->2U (bullish), 2U->2D (bearish)
2. Inside-bar breakouts: 1->2U, 1->2D
3. Outside-bar continuations: 3->2U, 3->2D
4. Strength (base 50 + family bonuses) and a confidence pass on top of it
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..models.signals import PatternDirection
from .bar_classifier import BarClassifier, BarType
from .candle_validator import Candle

logger = logging.getLogger(__name__)

REVERSAL = "reversal"
INSIDE_BREAKOUT = "inside_breakout"
OUTSIDE_CONTINUATION = "outside_continuation"

# (bar2 vs bar1, bar3 vs bar2) -> (family, direction)
PATTERN_TABLE: Dict[Tuple[BarType, BarType], Tuple[str, PatternDirection]] = {
    (BarType.DOWN, BarType.UP): (REVERSAL, PatternDirection.BULLISH),
    (BarType.UP, BarType.DOWN): (REVERSAL, PatternDirection.BEARISH),
    (BarType.INSIDE, BarType.UP): (INSIDE_BREAKOUT, PatternDirection.BULLISH),
    (BarType.INSIDE, BarType.DOWN): (INSIDE_BREAKOUT, PatternDirection.BEARISH),
    (BarType.OUTSIDE, BarType.UP): (OUTSIDE_CONTINUATION, PatternDirection.BULLISH),
    (BarType.OUTSIDE, BarType.DOWN): (OUTSIDE_CONTINUATION, PatternDirection.BEARISH),
}

BASE_STRENGTH = 50.0


@dataclass
class StratPattern:
    """A matched 3-bar Strat sequence"""
    sequence_label: str  # e.g. "2D->2U"
    family: str
    direction: PatternDirection
    strength: float  # 0-100
    confidence: float  # 0-100
    bars: Tuple[Candle, Candle, Candle]

    @property
    def entry(self) -> float:
        return self.bars[2].close

    @property
    def anchor(self) -> float:
        """Invalidation level: the lower low (long) or higher high (short) of bars 2 and 3."""
        _, bar2, bar3 = self.bars
        if self.direction == PatternDirection.BULLISH:
            return min(bar2.low, bar3.low)
        return max(bar2.high, bar3.high)

    @property
    def pattern_range(self) -> float:
        return self.bars[2].range


def _volume_ratio(bar2: Candle, bar3: Candle) -> Optional[float]:
    if not bar2.volume or not bar3.volume:
        return None
    return bar3.volume / bar2.volume


class StratPatternRecognizer:
    """
    Recognizes and scores Strat 3-bar patterns.

    Pure: the same window always yields the same pattern.
    """

    def __init__(self, min_strength: float = 40.0, classifier: Optional[BarClassifier] = None):
        """
        Initialize recognizer.

        Args:
            min_strength: Patterns scoring below this are discarded
            classifier: Bar classifier (default: Inside tie-break)
        """
        self.min_strength = min_strength
        self.classifier = classifier or BarClassifier()

    def detect(self, candles: Sequence[Candle]) -> Optional[StratPattern]:
        """Classify and match the last three candles of the window."""
        if len(candles) < 3:
            return None
        bar1, bar2, bar3 = candles[-3], candles[-2], candles[-1]
        first = self.classifier.classify(bar1, bar2)
        second = self.classifier.classify(bar2, bar3)
        return self.recognize(bar1, bar2, bar3, first, second)

    def recognize(
        self,
        bar1: Candle,
        bar2: Candle,
        bar3: Candle,
        first: Optional[BarType],
        second: Optional[BarType],
    ) -> Optional[StratPattern]:
        """
        Match the (bar1->bar2, bar2->bar3) bar types and score the result.

        Returns:
            StratPattern or None when the pair is not in the table or the
            strength falls under the floor
        """
        if first is None or second is None:
            return None
        match = PATTERN_TABLE.get((first, second))
        if match is None:
            return None

        family, direction = match
        label = f"{first.value}->{second.value}"

        strength = BASE_STRENGTH
        if family == REVERSAL:
            strength += self._reversal_bonus(bar2, bar3, direction)
        elif family == INSIDE_BREAKOUT:
            strength += self._breakout_bonus(bar1, bar2, bar3, direction)
        else:
            strength += self._outside_bonus(bar1, bar2, bar3, direction)

        if strength < self.min_strength:
            logger.debug(f"Pattern {label} rejected: strength {strength}")
            return None

        confidence = self._confidence(strength, bar1, bar2, bar3, direction)
        return StratPattern(
            sequence_label=label,
            family=family,
            direction=direction,
            strength=min(strength, 100.0),
            confidence=confidence,
            bars=(bar1, bar2, bar3),
        )

    # ===== Strength bonuses =====

    @staticmethod
    def _reversal_bonus(bar2: Candle, bar3: Candle, direction: PatternDirection) -> float:
        bonus = 0.0
        ratio = _volume_ratio(bar2, bar3)
        if ratio is not None and ratio > 1.2:
            bonus += 10
        if bar3.range > bar2.range * 1.1:
            bonus += 8
        if direction == PatternDirection.BULLISH:
            if bar3.is_bullish:
                bonus += 5
            if bar3.close > bar2.high:
                bonus += 12
        else:
            if bar3.is_bearish:
                bonus += 5
            if bar3.close < bar2.low:
                bonus += 12
        return bonus

    @staticmethod
    def _breakout_bonus(bar1: Candle, bar2: Candle, bar3: Candle, direction: PatternDirection) -> float:
        bonus = 0.0
        # Tight inside bar
        if bar2.range < bar1.range * 0.8:
            bonus += 15
        if direction == PatternDirection.BULLISH and bar3.close > bar2.high:
            bonus += 10
        elif direction == PatternDirection.BEARISH and bar3.close < bar2.low:
            bonus += 10
        ratio = _volume_ratio(bar2, bar3)
        if ratio is not None and ratio > 1.3:
            bonus += 8
        return bonus

    @staticmethod
    def _outside_bonus(bar1: Candle, bar2: Candle, bar3: Candle, direction: PatternDirection) -> float:
        bonus = 0.0
        if bar2.high > bar1.high and bar2.low < bar1.low:
            bonus += 12
        bullish = direction == PatternDirection.BULLISH
        if (bullish and bar2.is_bullish) or (not bullish and bar2.is_bearish):
            bonus += 8
        if (bullish and bar3.close > bar2.close) or (not bullish and bar3.close < bar2.close):
            bonus += 10
        return bonus

    # ===== Confidence =====

    @staticmethod
    def _confidence(
        strength: float,
        bar1: Candle,
        bar2: Candle,
        bar3: Candle,
        direction: PatternDirection,
    ) -> float:
        confidence = strength
        bullish = direction == PatternDirection.BULLISH

        ratio = _volume_ratio(bar2, bar3)
        if ratio is not None:
            if ratio > 1.5:
                confidence += 10
            elif ratio > 1.2:
                confidence += 5

        avg_range = (bar1.range + bar2.range + bar3.range) / 3
        if bar3.range > avg_range * 1.2:
            confidence += 8

        if (bullish and bar3.close > bar2.close) or (not bullish and bar3.close < bar2.close):
            confidence += 5

        change = (bar3.close - bar1.close) / bar1.close
        if (bullish and change > 0) or (not bullish and change < 0):
            confidence += 3

        return min(confidence, 100.0)

