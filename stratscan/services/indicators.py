"""
Technical Indicator Calculations
Pure Python implementations of the indicators the confluence scorer consumes,
plus a local IndicatorProvider that builds snapshots from the candle window.
"""
import logging
import statistics
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..exceptions import IndicatorProviderError
from ..models.market import BollingerValues, IndicatorSnapshot, MACDValues
from .candle_validator import Candle

logger = logging.getLogger(__name__)


class IndicatorService:
    """Service for calculating technical indicators"""

    def calculate_sma(self, values: List[float], period: int) -> List[float]:
        """
        Calculate Simple Moving Average

        Returns:
            List of SMA values (shorter than input by period-1)
        """
        if period <= 0 or len(values) < period:
            return []
        running = sum(values[:period])
        sma_values = [running / period]
        for i in range(period, len(values)):
            running += values[i] - values[i - period]
            sma_values.append(running / period)
        return sma_values

    def calculate_ema(self, values: List[float], period: int) -> List[float]:
        """
        Calculate Exponential Moving Average, seeded with the SMA of the
        first period values.
        """
        if period <= 0 or len(values) < period:
            return []
        k = 2 / (period + 1)
        ema_values = [sum(values[:period]) / period]
        for value in values[period:]:
            ema_values.append(value * k + ema_values[-1] * (1 - k))
        return ema_values

    def calculate_rsi(self, closes: List[float], period: int = 14) -> List[float]:
        """
        Calculate Relative Strength Index with Wilder smoothing

        Returns:
            List of RSI values (0-100 scale)
        """
        if len(closes) < period + 1:
            return []

        changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
        gains = [max(0.0, c) for c in changes]
        losses = [max(0.0, -c) for c in changes]

        def _rsi(gain: float, loss: float) -> float:
            if loss == 0:
                return 100.0
            return 100 - (100 / (1 + gain / loss))

        avg_gain = sum(gains[:period]) / period
        avg_loss = sum(losses[:period]) / period
        rsi_values = [_rsi(avg_gain, avg_loss)]

        for i in range(period, len(changes)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            rsi_values.append(_rsi(avg_gain, avg_loss))

        return rsi_values

    def calculate_macd(
        self,
        closes: List[float],
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9,
    ) -> Tuple[List[float], List[float], List[float]]:
        """
        Calculate MACD

        Returns:
            Tuple of (MACD line, Signal line, Histogram), all aligned on the
            same final bars
        """
        slow = self.calculate_ema(closes, slow_period)
        if not slow:
            return [], [], []
        fast = self.calculate_ema(closes, fast_period)[slow_period - fast_period:]
        macd_line = [f - s for f, s in zip(fast, slow)]

        signal_line = self.calculate_ema(macd_line, signal_period)
        if not signal_line:
            return macd_line, [], []

        macd_aligned = macd_line[signal_period - 1:]
        histogram = [m - s for m, s in zip(macd_aligned, signal_line)]
        return macd_aligned, signal_line, histogram

    def calculate_bollinger_bands(
        self,
        closes: List[float],
        period: int = 20,
        std_dev: float = 2.0,
    ) -> Tuple[List[float], List[float], List[float]]:
        """
        Calculate Bollinger Bands

        Returns:
            Tuple of (Upper band, Middle band (SMA), Lower band)
        """
        middle = self.calculate_sma(closes, period)
        if not middle or period < 2:
            return [], [], []

        upper, lower = [], []
        for offset, sma in enumerate(middle):
            spread = std_dev * statistics.stdev(closes[offset:offset + period])
            upper.append(sma + spread)
            lower.append(sma - spread)
        return upper, middle, lower

    def calculate_atr(
        self,
        highs: List[float],
        lows: List[float],
        closes: List[float],
        period: int = 14,
    ) -> List[float]:
        """
        Calculate Average True Range with Wilder smoothing
        """
        if len(closes) < period + 1:
            return []

        true_ranges = [
            max(highs[i] - lows[i], abs(highs[i] - closes[i - 1]), abs(lows[i] - closes[i - 1]))
            for i in range(1, len(closes))
        ]

        atr_values = [sum(true_ranges[:period]) / period]
        for tr in true_ranges[period:]:
            atr_values.append((atr_values[-1] * (period - 1) + tr) / period)
        return atr_values


def _last(values: List[float]) -> Optional[float]:
    return values[-1] if values else None


class LocalIndicatorProvider:
    """
    IndicatorProvider computed in-process from the candle window.

    Used when no external indicator service is injected. Indicators whose
    period exceeds the window are simply left out of the snapshot.
    """

    name = "local"

    def __init__(
        self,
        ema_periods: Sequence[int] = (20, 50, 100),
        rsi_period: int = 14,
        macd_periods: Tuple[int, int, int] = (12, 26, 9),
        volume_period: int = 20,
        bollinger_period: int = 20,
        atr_period: int = 14,
    ):
        self.ema_periods = tuple(ema_periods)
        self.rsi_period = rsi_period
        self.macd_periods = macd_periods
        self.volume_period = volume_period
        self.bollinger_period = bollinger_period
        self.atr_period = atr_period
        self.service = IndicatorService()

    async def get_snapshot(
        self,
        symbol: str,
        interval: str,
        lookback: int,
        candles: Sequence[Candle],
    ) -> IndicatorSnapshot:
        window = list(candles)[-lookback:] if lookback > 0 else list(candles)
        try:
            return self.compute(window)
        except ValidationError as e:
            raise IndicatorProviderError(
                f"Snapshot for {symbol}/{interval} failed validation: {e.error_count()} errors",
                symbol=symbol,
                provider=self.name,
            ) from e

    def compute(self, candles: Sequence[Candle]) -> IndicatorSnapshot:
        """Build a snapshot for the last candle of the window."""
        svc = self.service
        closes = [c.close for c in candles]
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]

        ema = {}
        for period in self.ema_periods:
            value = _last(svc.calculate_ema(closes, period))
            if value is not None:
                ema[period] = value

        fast, slow, signal = self.macd_periods
        macd_line, signal_line, histogram = svc.calculate_macd(closes, fast, slow, signal)
        macd = None
        if histogram:
            macd = MACDValues(macd=macd_line[-1], signal=signal_line[-1], histogram=histogram[-1])

        volume_sma = None
        volumes = [c.volume for c in candles]
        if all(v is not None for v in volumes):
            volume_sma = _last(svc.calculate_sma(volumes, self.volume_period))

        upper, middle, lower = svc.calculate_bollinger_bands(closes, self.bollinger_period)
        bollinger = None
        if middle:
            bollinger = BollingerValues(upper=upper[-1], middle=middle[-1], lower=lower[-1])

        return IndicatorSnapshot(
            ema=ema,
            rsi=_last(svc.calculate_rsi(closes, self.rsi_period)),
            macd=macd,
            volume_sma=volume_sma,
            bollinger=bollinger,
            atr=_last(svc.calculate_atr(highs, lows, closes, self.atr_period)),
        )
