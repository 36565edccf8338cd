"""
Swing Extractor
Finds swing highs and lows as strict extrema of a centred window.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .candle_validator import Candle

logger = logging.getLogger(__name__)


class SwingKind(str, Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class SwingPoint:
    """A confirmed swing in the candle window"""
    index: int
    price: float
    timestamp: datetime
    kind: SwingKind


def _strict_extrema(values: np.ndarray, lookback: int, use_max: bool) -> np.ndarray:
    """Boolean mask over the centre of every full window: True where the centre is the unique extreme."""
    windows = sliding_window_view(values, 2 * lookback + 1)
    centres = windows[:, lookback]
    extreme = windows.max(axis=1) if use_max else windows.min(axis=1)
    unique = (windows == extreme[:, None]).sum(axis=1) == 1
    return (centres == extreme) & unique


class SwingDetector:
    """
    Extracts swing points from a candle window.

    Index i is a swing high when its high is strictly greater than every
    other high in [i - lookback, i + lookback]; swing lows mirror that on
    lows. Only bars with a full window on both sides qualify. A bar that is
    both is recorded as a high.
    """

    def __init__(self, lookback: int = 5, min_history: int = 50):
        """
        Initialize detector.

        Args:
            lookback: Bars each side that must be strictly lower (higher)
            min_history: Fewer candles than this yields no swings
        """
        self.lookback = lookback
        self.min_history = min_history

    def find_swings(self, candles: Sequence[Candle]) -> List[SwingPoint]:
        n = len(candles)
        if n < self.min_history or n < 2 * self.lookback + 1:
            return []

        highs = np.array([c.high for c in candles], dtype=float)
        lows = np.array([c.low for c in candles], dtype=float)
        is_high = _strict_extrema(highs, self.lookback, use_max=True)
        is_low = _strict_extrema(lows, self.lookback, use_max=False)

        swings = []
        for offset in range(len(is_high)):
            i = offset + self.lookback
            if is_high[offset]:
                swings.append(SwingPoint(i, candles[i].high, candles[i].timestamp, SwingKind.HIGH))
            elif is_low[offset]:
                swings.append(SwingPoint(i, candles[i].low, candles[i].timestamp, SwingKind.LOW))
        return swings
