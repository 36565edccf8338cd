"""
Bar-Type Classifier
Maps two consecutive candles to a Strat bar type.

    1   Inside   - lower high and higher low than the previous bar
    2U  Up       - takes out the previous high without taking out the low
    2D  Down     - takes out the previous low without taking out the high
    3   Outside  - takes out both sides
"""
import logging
from enum import Enum
from typing import Optional

from .candle_validator import Candle

logger = logging.getLogger(__name__)


class BarType(str, Enum):
    """Strat bar classification"""
    INSIDE = "1"
    UP = "2U"
    DOWN = "2D"
    OUTSIDE = "3"


_TIE_BREAKS = {
    "inside": BarType.INSIDE,
    "up": BarType.UP,
    "down": BarType.DOWN,
}


def _compare(a: float, b: float) -> int:
    if a > b:
        return 1
    if a < b:
        return -1
    return 0


def classify_bar(prev: Optional[Candle], curr: Candle, tie_break: str = "inside") -> Optional[BarType]:
    """
    Classify curr relative to prev.

    Returns None only when there is no previous bar. Up is checked before
    Down so a bar with an equal high and higher low is Up, and a bar with an
    equal high and lower low is Down. A bar matching the previous high and
    low exactly resolves to the tie_break type.
    """
    if prev is None:
        return None

    high_cmp = _compare(curr.high, prev.high)
    low_cmp = _compare(curr.low, prev.low)

    if high_cmp == 0 and low_cmp == 0:
        return _TIE_BREAKS[tie_break]
    if high_cmp == -1 and low_cmp == 1:
        return BarType.INSIDE
    if high_cmp >= 0 and low_cmp >= 0:
        return BarType.UP
    if low_cmp <= 0 and high_cmp <= 0:
        return BarType.DOWN
    # Only remaining combination: higher high with lower low
    return BarType.OUTSIDE


class BarClassifier:
    """Stateless classifier bound to a configured tie-break policy."""

    def __init__(self, tie_break: str = "inside"):
        if tie_break not in _TIE_BREAKS:
            raise ValueError(f"Unknown tie_break policy: {tie_break}")
        self.tie_break = tie_break

    def classify(self, prev: Optional[Candle], curr: Candle) -> Optional[BarType]:
        return classify_bar(prev, curr, self.tie_break)
