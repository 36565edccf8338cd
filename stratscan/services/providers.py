"""
Collaborator interfaces
Candle feeds, indicator providers and account providers live outside the
engine; these protocols describe what the scanner expects from them.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from ..models.market import AccountContext, IndicatorSnapshot, RawCandle
from .candle_validator import Candle, as_utc

logger = logging.getLogger(__name__)

RawRecord = Union[RawCandle, Mapping[str, Any]]


@runtime_checkable
class CandleFeed(Protocol):
    """Source of raw candles in increasing timestamp order"""

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        since: Optional[datetime],
    ) -> Iterable[RawRecord]:
        ...


@runtime_checkable
class IndicatorProvider(Protocol):
    """Computes the indicator snapshot for the most recent bar of a window"""

    async def get_snapshot(
        self,
        symbol: str,
        interval: str,
        lookback: int,
        candles: Sequence[Candle],
    ) -> IndicatorSnapshot:
        ...


@runtime_checkable
class AccountProvider(Protocol):
    """Supplies equity and per-trade limits for sizing"""

    async def get_account(self) -> AccountContext:
        ...


class StaticAccountProvider:
    """AccountProvider returning a fixed context (replays and tests)."""

    def __init__(self, account: AccountContext):
        self.account = account

    async def get_account(self) -> AccountContext:
        return self.account


class ReplayCandleFeed:
    """
    CandleFeed over an in-memory list of records.

    Each fetch returns the records newer than `since`, optionally capped to
    `batch_size` per call so a replay advances bar by bar.
    """

    def __init__(self, records: Sequence[RawRecord], batch_size: Optional[int] = None):
        self.records = list(records)
        self.batch_size = batch_size

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        since: Optional[datetime],
    ) -> Iterable[RawRecord]:
        selected = []
        for record in self.records:
            raw = record if isinstance(record, RawCandle) else RawCandle.model_validate(dict(record))
            if raw.symbol != symbol or raw.interval != interval:
                continue
            if since is not None and as_utc(raw.timestamp) <= as_utc(since):
                continue
            selected.append(raw)
        if self.batch_size is not None:
            selected = selected[:self.batch_size]
        return selected
