"""
Market data boundary models
Untrusted feed records, indicator snapshots and account context
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Optional
from datetime import datetime


class RawCandle(BaseModel):
    """Candle as delivered by a feed, before validation"""
    symbol: str
    interval: str
    timestamp: datetime
    # Left untyped: the validator decides what is numeric
    open: Any = None
    high: Any = None
    low: Any = None
    close: Any = None
    volume: Any = None


class MACDValues(BaseModel):
    """MACD line, signal line and histogram for one bar"""
    macd: float
    signal: float
    histogram: float


class BollingerValues(BaseModel):
    """Bollinger bands for one bar"""
    upper: float
    middle: float
    lower: float


class IndicatorSnapshot(BaseModel):
    """
    Indicator values for the most recent bar of a window.

    Missing values are allowed; the factor that needs them simply fails.
    """
    ema: Dict[int, float] = Field(default_factory=dict, description="EMA value keyed by period")
    rsi: Optional[float] = Field(None, ge=0, le=100)
    macd: Optional[MACDValues] = None
    volume_sma: Optional[float] = Field(None, ge=0)
    bollinger: Optional[BollingerValues] = None
    atr: Optional[float] = Field(None, ge=0)

    @field_validator('ema')
    @classmethod
    def ema_values_positive(cls, value: Dict[int, float]) -> Dict[int, float]:
        for period, ema in value.items():
            if period <= 0:
                raise ValueError(f"EMA period must be positive, got {period}")
            if ema <= 0:
                raise ValueError(f"EMA({period}) must be positive, got {ema}")
        return value


class AccountContext(BaseModel):
    """Account scalars used for position sizing"""
    equity: float = Field(..., gt=0, description="Total account equity")
    max_risk_per_trade: float = Field(0.02, gt=0, le=1, description="Fraction of equity risked per trade")
    max_position_size: float = Field(0.05, gt=0, le=1, description="Max fraction of equity in one position")
