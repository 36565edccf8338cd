"""
Technical Pattern Recognition
Candlestick and chart patterns used as confirmation for primary setups.

This service provides:
1. Candlestick shapes at a bar: engulfing, doji, hammer, shooting star
2. Chart structures ending near a bar: double top/bottom, head & shoulders,
   ascending/descending/symmetrical triangles
3. Direction checks used by the confluence scorer and the agreement bonus
"""
import logging
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass
from enum import Enum

from ..models.signals import PatternDirection
from .candle_validator import Candle

logger = logging.getLogger(__name__)


class TechnicalPatternKind(str, Enum):
    """Types of confirmation patterns"""
    # Candlestick Patterns
    ENGULFING_BULLISH = "engulfing_bullish"
    ENGULFING_BEARISH = "engulfing_bearish"
    DOJI = "doji"
    HAMMER = "hammer"
    SHOOTING_STAR = "shooting_star"

    # Chart Patterns
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"
    SYMMETRICAL_TRIANGLE = "symmetrical_triangle"


@dataclass
class TechnicalPattern:
    """Result of pattern detection"""
    kind: TechnicalPatternKind
    direction: PatternDirection
    index: int  # bar that completes the pattern
    confidence: float  # 0-100
    start_index: Optional[int] = None
    price_target: Optional[float] = None

    def agrees_with(self, direction: PatternDirection) -> bool:
        if self.kind == TechnicalPatternKind.DOJI:
            return True
        return self.direction == direction


class TechnicalPatternDetector:
    """
    Detects confirmation patterns in a candle window.

    All methods take the window plus the index being evaluated and only look
    at bars up to and including that index.
    """

    def __init__(
        self,
        doji_body_ratio: float = 0.1,
        tolerance: float = 0.02,
        extrema_window: int = 3,
        chart_recency_bars: int = 10,
    ):
        """
        Initialize detector.

        Args:
            doji_body_ratio: Body/range ratio under which a bar is a doji
            tolerance: Relative tolerance for "equal" tops, bottoms and shoulders
            extrema_window: Bars each side for local extrema in chart patterns
            chart_recency_bars: Chart patterns must complete this close to the index
        """
        self.doji_body_ratio = doji_body_ratio
        self.tolerance = tolerance
        self.extrema_window = extrema_window
        self.chart_recency_bars = chart_recency_bars

    # ===== Candlesticks =====

    def candlesticks_at(self, candles: Sequence[Candle], index: int) -> List[TechnicalPattern]:
        """Candlestick shapes formed at candles[index]."""
        if index < 0 or index >= len(candles):
            return []

        found = []
        bar = candles[index]
        body = bar.body
        rng = bar.range

        if body < rng * self.doji_body_ratio:
            found.append(TechnicalPattern(TechnicalPatternKind.DOJI, PatternDirection.NEUTRAL, index, 60))

        # Long lower shadow closing near the high
        if bar.is_bullish and rng > 3 * body and (bar.close - bar.low) > 2 * (bar.high - bar.close):
            found.append(TechnicalPattern(TechnicalPatternKind.HAMMER, PatternDirection.BULLISH, index, 70))

        # Long upper shadow opening near the low
        if bar.is_bearish and rng > 3 * body and (bar.high - bar.open) > 2 * (bar.open - bar.low):
            found.append(TechnicalPattern(TechnicalPatternKind.SHOOTING_STAR, PatternDirection.BEARISH, index, 70))

        if index >= 1:
            prev = candles[index - 1]
            if (bar.is_bullish and prev.is_bearish
                    and bar.open < prev.close and bar.close > prev.open):
                found.append(TechnicalPattern(
                    TechnicalPatternKind.ENGULFING_BULLISH, PatternDirection.BULLISH, index, 80, start_index=index - 1
                ))
            if (bar.is_bearish and prev.is_bullish
                    and bar.open > prev.close and bar.close < prev.open):
                found.append(TechnicalPattern(
                    TechnicalPatternKind.ENGULFING_BEARISH, PatternDirection.BEARISH, index, 80, start_index=index - 1
                ))

        return found

    # ===== Chart patterns =====

    def find_local_extrema(self, highs: List[float], lows: List[float]) -> Tuple[List[int], List[int]]:
        """
        Find local maxima of highs and minima of lows.

        Returns:
            Tuple of (maxima_indices, minima_indices)
        """
        w = self.extrema_window
        maxima, minima = [], []
        for i in range(w, len(highs) - w):
            neighbours = [j for j in range(i - w, i + w + 1) if j != i]
            if all(highs[i] >= highs[j] for j in neighbours):
                maxima.append(i)
            if all(lows[i] <= lows[j] for j in neighbours):
                minima.append(i)
        return maxima, minima

    def chart_patterns_at(self, candles: Sequence[Candle], index: int) -> List[TechnicalPattern]:
        """Chart patterns completing within chart_recency_bars of index."""
        window = list(candles[:index + 1])
        if len(window) < 2 * self.extrema_window + 3:
            return []

        highs = [c.high for c in window]
        lows = [c.low for c in window]
        maxima, minima = self.find_local_extrema(highs, lows)

        found = []
        for detect in (self._double_top, self._double_bottom, self._head_and_shoulders,
                       self._inverse_head_and_shoulders):
            pattern = detect(highs, lows, maxima, minima)
            if pattern is not None:
                found.append(pattern)
        triangle = self._triangle(highs, lows)
        if triangle is not None:
            found.append(triangle)

        return [p for p in found if index - p.index <= self.chart_recency_bars]

    def _double_top(self, highs, lows, maxima, minima) -> Optional[TechnicalPattern]:
        # Most recent pair first
        for i in range(len(maxima) - 2, -1, -1):
            first, second = maxima[i], maxima[i + 1]
            top_diff = abs(highs[first] - highs[second]) / highs[first]
            if top_diff > self.tolerance:
                continue
            troughs = [m for m in minima if first < m < second]
            if not troughs:
                continue
            trough = min(lows[m] for m in troughs)
            if (highs[first] - trough) / highs[first] < 0.03:
                continue
            return TechnicalPattern(
                TechnicalPatternKind.DOUBLE_TOP, PatternDirection.BEARISH, second,
                confidence=min((1 - top_diff) * 100, 90),
                start_index=first,
                price_target=trough - (highs[first] - trough),
            )
        return None

    def _double_bottom(self, highs, lows, maxima, minima) -> Optional[TechnicalPattern]:
        for i in range(len(minima) - 2, -1, -1):
            first, second = minima[i], minima[i + 1]
            bottom_diff = abs(lows[first] - lows[second]) / lows[first]
            if bottom_diff > self.tolerance:
                continue
            peaks = [m for m in maxima if first < m < second]
            if not peaks:
                continue
            peak = max(highs[m] for m in peaks)
            if (peak - lows[first]) / lows[first] < 0.03:
                continue
            return TechnicalPattern(
                TechnicalPatternKind.DOUBLE_BOTTOM, PatternDirection.BULLISH, second,
                confidence=min((1 - bottom_diff) * 100, 90),
                start_index=first,
                price_target=peak + (peak - lows[first]),
            )
        return None

    def _head_and_shoulders(self, highs, lows, maxima, minima) -> Optional[TechnicalPattern]:
        for i in range(len(maxima) - 3, -1, -1):
            left, head, right = maxima[i], maxima[i + 1], maxima[i + 2]
            if highs[head] <= max(highs[left], highs[right]):
                continue
            shoulder_diff = abs(highs[left] - highs[right]) / highs[left]
            if shoulder_diff > self.tolerance * 2:
                continue
            troughs = [m for m in minima if left < m < right]
            if not troughs:
                continue
            neckline = min(lows[m] for m in troughs)
            prominence = (highs[head] - max(highs[left], highs[right])) / highs[head]
            return TechnicalPattern(
                TechnicalPatternKind.HEAD_AND_SHOULDERS, PatternDirection.BEARISH, right,
                confidence=min((1 - shoulder_diff) * 50 + prominence * 5000, 95),
                start_index=left,
                price_target=neckline - (highs[head] - neckline),
            )
        return None

    def _inverse_head_and_shoulders(self, highs, lows, maxima, minima) -> Optional[TechnicalPattern]:
        for i in range(len(minima) - 3, -1, -1):
            left, head, right = minima[i], minima[i + 1], minima[i + 2]
            if lows[head] >= min(lows[left], lows[right]):
                continue
            shoulder_diff = abs(lows[left] - lows[right]) / lows[left]
            if shoulder_diff > self.tolerance * 2:
                continue
            peaks = [m for m in maxima if left < m < right]
            if not peaks:
                continue
            neckline = max(highs[m] for m in peaks)
            prominence = (min(lows[left], lows[right]) - lows[head]) / lows[head]
            return TechnicalPattern(
                TechnicalPatternKind.INVERSE_HEAD_AND_SHOULDERS, PatternDirection.BULLISH, right,
                confidence=min((1 - shoulder_diff) * 50 + prominence * 5000, 95),
                start_index=left,
                price_target=neckline + (neckline - lows[head]),
            )
        return None

    def _triangle(self, highs: List[float], lows: List[float], span: int = 20) -> Optional[TechnicalPattern]:
        """Slope of the recent peaks vs slope of the recent troughs, relative to price."""
        if len(highs) < span:
            return None
        start = len(highs) - span
        recent_highs = highs[start:]
        recent_lows = lows[start:]
        w = 2
        peaks = [i for i in range(w, span - w)
                 if all(recent_highs[i] >= recent_highs[j] for j in range(i - w, i + w + 1))]
        troughs = [i for i in range(w, span - w)
                   if all(recent_lows[i] <= recent_lows[j] for j in range(i - w, i + w + 1))]
        if len(peaks) < 2 or len(troughs) < 2:
            return None

        scale = recent_highs[-1] or 1.0
        high_slope = (recent_highs[peaks[-1]] - recent_highs[peaks[0]]) / (peaks[-1] - peaks[0]) / scale
        low_slope = (recent_lows[troughs[-1]] - recent_lows[troughs[0]]) / (troughs[-1] - troughs[0]) / scale
        flat = 0.0005

        if high_slope < -flat and low_slope > flat:
            kind, direction, confidence = TechnicalPatternKind.SYMMETRICAL_TRIANGLE, PatternDirection.NEUTRAL, 70
        elif abs(high_slope) <= flat and low_slope > flat:
            kind, direction, confidence = TechnicalPatternKind.ASCENDING_TRIANGLE, PatternDirection.BULLISH, 75
        elif high_slope < -flat and abs(low_slope) <= flat:
            kind, direction, confidence = TechnicalPatternKind.DESCENDING_TRIANGLE, PatternDirection.BEARISH, 75
        else:
            return None

        return TechnicalPattern(kind, direction, len(highs) - 1, confidence, start_index=start)

    # ===== Queries =====

    def detect(self, candles: Sequence[Candle], index: int) -> List[TechnicalPattern]:
        """All candlestick and chart patterns relevant at index."""
        return self.candlesticks_at(candles, index) + self.chart_patterns_at(candles, index)

    def confirms(self, candles: Sequence[Candle], index: int, direction: PatternDirection) -> bool:
        """True when a pattern at index matches direction (a doji matches either)."""
        return any(p.agrees_with(direction) for p in self.detect(candles, index))

    def agrees_within(
        self,
        candles: Sequence[Candle],
        index: int,
        direction: PatternDirection,
        window_bars: int,
    ) -> bool:
        """
        True when a directional candlestick pattern in the last window_bars
        bars up to index points the same way. Dojis do not count.
        """
        for i in range(max(0, index - window_bars), index + 1):
            for pattern in self.candlesticks_at(candles, i):
                if pattern.direction == direction:
                    return True
        return False
