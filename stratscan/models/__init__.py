"""
Pydantic models for the StratScan boundary records.
"""
from .market import RawCandle, MACDValues, BollingerValues, IndicatorSnapshot, AccountContext
from .signals import PatternDirection, SignalDirection, MarketSession, TradeSignal

__all__ = [
    'RawCandle',
    'MACDValues',
    'BollingerValues',
    'IndicatorSnapshot',
    'AccountContext',
    'PatternDirection',
    'SignalDirection',
    'MarketSession',
    'TradeSignal',
]
