"""
Candle Validator
Normalizes raw feed records into immutable candles and rejects malformed bars.

Rejections are returned, never raised, so a bad bar can not stop the scan loop.
"""
import math
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from ..models.market import RawCandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candle:
    """Validated OHLCV bar. Timestamps are always timezone-aware UTC."""
    symbol: str
    interval: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


class RejectReason(str, Enum):
    """Why a raw record did not become a candle"""
    NON_NUMERIC = "non-numeric"
    INVALID_OHLC = "invalid-ohlc"
    SUB_MINIMUM_RANGE = "sub-minimum-range"
    OUT_OF_ORDER = "out-of-order"
    DUPLICATE_TIMESTAMP = "duplicate-timestamp"
    SYMBOL_MISMATCH = "symbol-mismatch"


@dataclass
class ValidationResult:
    """Either an accepted candle or a reject reason"""
    candle: Optional[Candle] = None
    reason: Optional[RejectReason] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.candle is not None

    @classmethod
    def reject(cls, reason: RejectReason, detail: str = "") -> "ValidationResult":
        return cls(reason=reason, detail=detail)


def _to_float(value: Any) -> Optional[float]:
    """Parse a finite float from numbers or numeric strings, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class CandleValidator:
    """
    Validates raw OHLCV records.

    Checks numeric parseability, the OHLC envelope (high above open/close,
    low below them, high strictly above low), the minimum bar range and,
    when the last accepted candle of the target history is given, strict
    timestamp ordering.
    When the target symbol and interval are given, records for any other
    series are rejected as well.
    """

    def __init__(self, min_bar_range: float = 0.01):
        """
        Initialize validator.

        Args:
            min_bar_range: Smallest accepted high-low range
        """
        self.min_bar_range = min_bar_range

    def validate(
        self,
        raw: Union[RawCandle, Mapping[str, Any]],
        last: Optional[Candle] = None,
        symbol: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> ValidationResult:
        """
        Validate one raw record.

        Args:
            raw: RawCandle or a mapping with the same keys
            last: Last candle already accepted into the target history
            symbol: Symbol of the target history
            interval: Interval of the target history

        Returns:
            ValidationResult with either a Candle or a RejectReason
        """
        if not isinstance(raw, RawCandle):
            try:
                raw = RawCandle.model_validate(dict(raw))
            except ValidationError as e:
                return ValidationResult.reject(RejectReason.NON_NUMERIC, f"unparseable record: {e.error_count()} errors")

        if (symbol is not None and raw.symbol != symbol) or (interval is not None and raw.interval != interval):
            return ValidationResult.reject(
                RejectReason.SYMBOL_MISMATCH,
                f"{raw.symbol}/{raw.interval} record for {symbol or raw.symbol}/{interval or raw.interval} history",
            )

        prices = {name: _to_float(getattr(raw, name)) for name in ('open', 'high', 'low', 'close')}
        bad = [name for name, value in prices.items() if value is None]
        if bad:
            return ValidationResult.reject(RejectReason.NON_NUMERIC, f"non-numeric {', '.join(bad)}")

        volume = None
        if raw.volume is not None:
            volume = _to_float(raw.volume)
            if volume is None:
                return ValidationResult.reject(RejectReason.NON_NUMERIC, "non-numeric volume")
            if volume < 0:
                return ValidationResult.reject(RejectReason.INVALID_OHLC, f"negative volume {volume}")

        o, h, l, c = prices['open'], prices['high'], prices['low'], prices['close']
        if min(o, h, l, c) <= 0:
            return ValidationResult.reject(RejectReason.INVALID_OHLC, "prices must be positive")
        if h < max(o, c) or l > min(o, c) or h <= l:
            return ValidationResult.reject(
                RejectReason.INVALID_OHLC, f"o={o} h={h} l={l} c={c} violates the OHLC envelope"
            )
        if h - l < self.min_bar_range:
            return ValidationResult.reject(
                RejectReason.SUB_MINIMUM_RANGE, f"range {h - l:.6f} < {self.min_bar_range}"
            )

        ts = as_utc(raw.timestamp)
        if last is not None:
            if ts == last.timestamp:
                return ValidationResult.reject(RejectReason.DUPLICATE_TIMESTAMP, ts.isoformat())
            if ts < last.timestamp:
                return ValidationResult.reject(
                    RejectReason.OUT_OF_ORDER, f"{ts.isoformat()} before {last.timestamp.isoformat()}"
                )

        return ValidationResult(candle=Candle(
            symbol=raw.symbol,
            interval=raw.interval,
            timestamp=ts,
            open=o,
            high=h,
            low=l,
            close=c,
            volume=volume,
        ))
