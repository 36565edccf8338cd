"""
StratScan Test Mocks Package
============================
Candle builders and in-memory collaborators used across the test suite.

This package provides:
- fixtures: hand-built and seeded candle windows
- providers: MockCandleFeed, MockIndicatorProvider, RecordingSink

Usage:
    from stratscan.tests.mocks import MockIndicatorProvider, candles_from_bars
"""

from stratscan.tests.mocks.fixtures import (
    SESSION_OPEN,
    eastern,
    make_candle,
    candles_from_bars,
    raw_records,
    strat_reversal_bars,
    abcd_bullish_candles,
    PriceDataset,
    generate_trend_data,
    generate_uptrend_data,
    generate_downtrend_data,
    generate_sideways_data,
)

from stratscan.tests.mocks.providers import (
    MockCandleFeed,
    MockIndicatorProvider,
    RecordingSink,
    bullish_snapshot,
    bearish_snapshot,
)

__all__ = [
    "SESSION_OPEN",
    "eastern",
    "make_candle",
    "candles_from_bars",
    "raw_records",
    "strat_reversal_bars",
    "abcd_bullish_candles",
    "PriceDataset",
    "generate_trend_data",
    "generate_uptrend_data",
    "generate_downtrend_data",
    "generate_sideways_data",
    "MockCandleFeed",
    "MockIndicatorProvider",
    "RecordingSink",
    "bullish_snapshot",
    "bearish_snapshot",
]
