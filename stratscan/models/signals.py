"""
Signal models
Enums shared across detectors and the immutable TradeSignal record
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List
from datetime import datetime
from enum import Enum


# ============== Enums ==============

class PatternDirection(str, Enum):
    """Bias implied by a detected pattern"""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"  # doji only


class SignalDirection(str, Enum):
    """Trade side of an emitted signal"""
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def from_pattern(cls, direction: PatternDirection) -> "SignalDirection":
        if direction == PatternDirection.BULLISH:
            return cls.LONG
        if direction == PatternDirection.BEARISH:
            return cls.SHORT
        raise ValueError(f"No trade side for {direction}")


class MarketSession(str, Enum):
    """US equity trading session"""
    PREMARKET = "premarket"
    INTRADAY = "intraday"
    AFTERHOURS = "afterhours"
    CLOSED = "closed"


# ============== Trade Signal ==============

class TradeSignal(BaseModel):
    """Risk-bounded trade proposal emitted by the engine"""
    model_config = ConfigDict(frozen=True)

    symbol: str
    direction: SignalDirection
    confidence: float = Field(..., ge=0, le=1)
    entry_price: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    take_profit: float = Field(..., gt=0)
    position_size: float = Field(..., gt=0, description="Units to trade")
    pattern_label: str
    reasoning: List[str] = Field(default_factory=list)
    risk_reward_ratio: float = Field(..., gt=0)
    timestamp: datetime
    session: MarketSession
    interval: str
