"""
StratScan: Strat and ABCD pattern detection, confluence scoring and
risk-adjusted trade signals for intraday candle streams.
"""
from .models.signals import TradeSignal
from .services.scanner import Scanner
from .services.signal_engine import SignalEngine

__version__ = "0.1.0"

__all__ = [
    "Scanner",
    "SignalEngine",
    "TradeSignal",
]
