"""
Candle Fixtures for Testing
===========================
Builds candle windows for the classifier, detectors and the engine.

This module provides:
- make_candle / candles_from_bars: exact hand-written bars
- raw_records: the same bars as untrusted feed records
- strat_reversal_bars: 5 bars ending in a 2D -> 2U reversal
- abcd_bullish_candles: 51 bars tracing a bullish ABCD with D near its target
- PriceDataset generators (uptrend, downtrend, sideways) for indicator tests

Usage:
    from stratscan.tests.mocks.fixtures import candles_from_bars, strat_reversal_bars

    candles = candles_from_bars(strat_reversal_bars())
"""

import random
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import pytz

from stratscan.models.market import RawCandle
from stratscan.services.candle_validator import Candle

# 2026-03-02 09:30 America/New_York (EST)
SESSION_OPEN = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)

EASTERN = pytz.timezone("America/New_York")

Bar = Tuple[float, ...]  # (open, high, low, close[, volume])


def eastern(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Timezone-aware New York wall-clock time."""
    return EASTERN.localize(datetime(year, month, day, hour, minute))


def make_candle(
    open: float,
    high: float,
    low: float,
    close: float,
    volume: Optional[float] = 1000.0,
    index: int = 0,
    symbol: str = "TEST",
    interval: str = "5Min",
    start: datetime = SESSION_OPEN,
    minutes: int = 5,
) -> Candle:
    """Candle number `index` of a series starting at `start`."""
    return Candle(
        symbol=symbol,
        interval=interval,
        timestamp=start + timedelta(minutes=minutes * index),
        open=open,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def candles_from_bars(
    bars: Sequence[Bar],
    symbol: str = "TEST",
    interval: str = "5Min",
    start: datetime = SESSION_OPEN,
    minutes: int = 5,
) -> List[Candle]:
    """Consecutive candles from (o, h, l, c[, v]) tuples."""
    candles = []
    for i, bar in enumerate(bars):
        o, h, l, c = bar[:4]
        volume = bar[4] if len(bar) > 4 else 1000.0
        candles.append(make_candle(o, h, l, c, volume, i, symbol, interval, start, minutes))
    return candles


def raw_records(
    bars: Sequence[Bar],
    symbol: str = "TEST",
    interval: str = "5Min",
    start: datetime = SESSION_OPEN,
    minutes: int = 5,
) -> List[RawCandle]:
    """Feed records for the same bars candles_from_bars would build."""
    return [
        RawCandle(
            symbol=c.symbol,
            interval=c.interval,
            timestamp=c.timestamp,
            open=c.open,
            high=c.high,
            low=c.low,
            close=c.close,
            volume=c.volume,
        )
        for c in candles_from_bars(bars, symbol, interval, start, minutes)
    ]


# ============================================================
# Pattern Fixtures
# ============================================================

def strat_reversal_bars() -> List[Bar]:
    """
    Five bars whose last three form 2D -> 2U.

    bar 3 takes out bar 2's low only (2D), bar 4 takes out bar 3's high only
    (2U), closes above bar 3's high on 1.5x its volume.
    """
    return [
        (100.0, 101.0, 99.0, 100.5, 1000),
        (100.5, 101.5, 99.5, 101.0, 1000),
        (101.0, 102.0, 100.0, 101.5, 1000),
        (101.5, 101.8, 99.0, 99.5, 1000),   # 2D
        (99.6, 103.0, 99.4, 102.8, 1500),   # 2U
    ]


def _path(waypoints: Sequence[Tuple[int, float]]) -> List[float]:
    """Piecewise linear closes through (index, close) waypoints."""
    closes = []
    for (i0, p0), (i1, p1) in zip(waypoints, waypoints[1:]):
        steps = i1 - i0
        for k in range(steps):
            closes.append(round(p0 + (p1 - p0) * k / steps, 4))
    closes.append(waypoints[-1][1])
    return closes


def _bars_from_closes(closes: Sequence[float], half_range: float = 0.3) -> List[Bar]:
    """Bars whose high and low follow the close, so extrema sit exactly at the waypoints."""
    bars = []
    prev = closes[0]
    for close in closes:
        step = 0.1 if close >= prev else -0.1
        bars.append((close - step, close + half_range, close - half_range, close, 1000.0))
        prev = close
    return bars


# Swing prices of abcd_bullish_candles (highs/lows, not closes)
ABCD_A, ABCD_B, ABCD_C = 100.0, 110.0, 104.0
ABCD_D = 116.33  # C + 6 * 1.618 * 1.27


def abcd_bullish_candles(symbol: str = "TEST", interval: str = "5Min") -> List[Candle]:
    """
    51 candles tracing A(14) low 100, B(24) high 110, C(34) low 104,
    D(44) high 116.33, then a shallow pullback that keeps the close near D.

    BC retraces 0.6 of AB (extension 1.618) so D sits on the 1.27 target.
    """
    h = 0.3
    closes = _path([
        (0, 106.0),
        (14, ABCD_A + h),
        (24, ABCD_B - h),
        (34, ABCD_C + h),
        (44, ABCD_D - h),
        (50, ABCD_D - h - 1.2),
    ])
    return candles_from_bars(_bars_from_closes(closes, h), symbol, interval)


# ============================================================
# Random Price Data (indicator smoke tests)
# ============================================================

@dataclass
class PriceDataset:
    """OHLCV arrays of a generated series."""
    opens: List[float]
    highs: List[float]
    lows: List[float]
    closes: List[float]
    volumes: List[int]

    def __len__(self) -> int:
        return len(self.closes)

    def to_candles(self, symbol: str = "TEST", interval: str = "5Min") -> List[Candle]:
        bars = list(zip(self.opens, self.highs, self.lows, self.closes, self.volumes))
        return candles_from_bars(bars, symbol, interval)


def _generate_base_prices(
    start_price: float,
    bars: int,
    trend: float,
    volatility: float,
    rng: random.Random,
) -> List[float]:
    prices = [start_price]
    price = start_price
    for _ in range(bars - 1):
        price = max(price * (1 + trend + rng.gauss(0, volatility)), 0.5)
        prices.append(round(price, 2))
    return prices


def _generate_ohlc_from_closes(
    closes: List[float],
    intrabar_volatility: float,
    rng: random.Random,
) -> Tuple[List[float], List[float], List[float]]:
    opens, highs, lows = [], [], []
    for i, close in enumerate(closes):
        open_price = closes[i - 1] if i else close * (1 + rng.gauss(0, 0.002))
        extra = close * intrabar_volatility
        # At least a few cents of range so every bar passes validation
        high_price = max(open_price, close) + rng.uniform(0.02, extra + 0.02)
        low_price = min(open_price, close) - rng.uniform(0.02, extra + 0.02)
        opens.append(round(open_price, 2))
        highs.append(round(high_price, 2))
        lows.append(round(max(low_price, 0.01), 2))
    return opens, highs, lows


def _generate_volumes(bars: int, base_volume: int, rng: random.Random) -> List[int]:
    # Log-normal around the base
    return [max(int(base_volume * math.exp(rng.gauss(0, 0.3))), 1000) for _ in range(bars)]


def generate_trend_data(
    start_price: float = 100.0,
    bars: int = 150,
    trend: float = 0.0,
    volatility: float = 0.005,
    seed: int = 7,
) -> PriceDataset:
    """
    Seeded random walk with drift.

    Args:
        start_price: First close
        bars: Number of bars
        trend: Drift per bar (0.002 = 0.2%)
        volatility: Per-bar volatility
        seed: Random seed for reproducibility
    """
    rng = random.Random(seed)
    closes = _generate_base_prices(start_price, bars, trend, volatility, rng)
    opens, highs, lows = _generate_ohlc_from_closes(closes, volatility, rng)
    highs = [max(h, o, c) for h, o, c in zip(highs, opens, closes)]
    lows = [min(l, o, c) for l, o, c in zip(lows, opens, closes)]
    return PriceDataset(opens, highs, lows, closes, _generate_volumes(bars, 100000, rng))


def generate_uptrend_data(bars: int = 150, seed: int = 7) -> PriceDataset:
    return generate_trend_data(bars=bars, trend=0.003, volatility=0.002, seed=seed)


def generate_downtrend_data(bars: int = 150, seed: int = 7) -> PriceDataset:
    return generate_trend_data(bars=bars, trend=-0.003, volatility=0.002, seed=seed)


def generate_sideways_data(bars: int = 150, seed: int = 7) -> PriceDataset:
    return generate_trend_data(bars=bars, trend=0.0, volatility=0.004, seed=seed)
