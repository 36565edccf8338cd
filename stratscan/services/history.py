"""
Symbol History
Bounded, ordered candle window per (symbol, interval).
"""
import logging
from collections import deque
from typing import Deque, List, Optional

from .candle_validator import Candle

logger = logging.getLogger(__name__)


class SymbolHistory:
    """
    Ordered candle buffer that evicts the oldest entries beyond max_length.

    Only the scan pipeline that owns the symbol appends to it, always
    after the CandleValidator has accepted the bar.
    """

    def __init__(self, symbol: str, interval: str, max_length: int = 200):
        self.symbol = symbol
        self.interval = interval
        self.max_length = max_length
        self._candles: Deque[Candle] = deque(maxlen=max_length)

    def __len__(self) -> int:
        return len(self._candles)

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def append(self, candle: Candle) -> None:
        if candle.symbol != self.symbol or candle.interval != self.interval:
            raise ValueError(
                f"Candle for {candle.symbol}/{candle.interval} appended to {self.symbol}/{self.interval} history"
            )
        self._candles.append(candle)

    def resize(self, max_length: int) -> None:
        """Change the window length, keeping the most recent bars."""
        self.max_length = max_length
        self._candles = deque(self._candles, maxlen=max_length)

    def snapshot(self, last_n: Optional[int] = None) -> List[Candle]:
        """Copy of the window, optionally only the most recent last_n bars."""
        candles = list(self._candles)
        if last_n is not None:
            return candles[-last_n:] if last_n > 0 else []
        return candles
