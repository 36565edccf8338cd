"""
Risk & Trade-Level Calculator
Stops, targets, position sizing and signal confidence for a candidate setup.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..config.scanner_config import RiskConfig
from ..exceptions import DegenerateRiskError
from ..models.market import AccountContext
from ..models.signals import PatternDirection

logger = logging.getLogger(__name__)


@dataclass
class TradeLevels:
    """Entry, stop and target for one setup"""
    entry: float
    stop_loss: float
    take_profit: float
    risk_per_unit: float
    risk_reward_ratio: float
    stop_policy: str  # policy actually applied


@dataclass
class PositionSizeResult:
    """Result of position sizing calculation"""
    size: float
    position_value: float
    risk_amount: float
    risk_per_unit: float
    limited_by: str  # What limited the position size


@dataclass
class RiskAssessment:
    """Everything the engine needs to build a TradeSignal"""
    levels: TradeLevels
    position: PositionSizeResult
    confidence: float


class RiskCalculator:
    """
    Converts a candidate (entry, anchor, direction) into a risk-bounded trade.

    Stops follow the configured policy: ANCHOR puts the stop a buffer beyond
    the pattern anchor, ATR puts it a multiple of ATR from entry and falls
    back to ANCHOR when no ATR is available.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        """
        Initialize risk calculator.

        Args:
            config: Stop, target, sizing and confidence parameters
        """
        self.config = config or RiskConfig()

    def stop_loss(
        self,
        entry: float,
        anchor: float,
        direction: PatternDirection,
        atr: Optional[float] = None,
    ):
        """
        Calculate stop-loss price.

        Returns:
            Tuple of (stop price, policy applied)
        """
        long = direction == PatternDirection.BULLISH
        if self.config.stop_policy == "atr" and atr and atr > 0:
            offset = atr * self.config.atr_stop_multiplier
            return (entry - offset if long else entry + offset), "atr"

        buffer = anchor * self.config.stop_buffer_pct
        return (anchor - buffer if long else anchor + buffer), "anchor"

    def trade_levels(
        self,
        entry: float,
        anchor: float,
        direction: PatternDirection,
        atr: Optional[float] = None,
        pattern_label: Optional[str] = None,
    ) -> TradeLevels:
        """
        Calculate stop and take-profit for a setup.

        Raises:
            DegenerateRiskError: Stop equals entry, sits on the wrong side of
                it, or is not a positive price
        """
        stop, policy = self.stop_loss(entry, anchor, direction, atr)
        long = direction == PatternDirection.BULLISH

        risk = entry - stop if long else stop - entry
        if risk <= 0 or stop <= 0:
            raise DegenerateRiskError(entry_price=entry, stop_loss=stop)

        ratio = self.config.risk_reward_for(pattern_label) if pattern_label else self.config.risk_reward_ratio
        take_profit = entry + risk * ratio if long else entry - risk * ratio
        if take_profit <= 0:
            raise DegenerateRiskError(entry_price=entry, stop_loss=stop)

        return TradeLevels(
            entry=entry,
            stop_loss=stop,
            take_profit=take_profit,
            risk_per_unit=risk,
            risk_reward_ratio=ratio,
            stop_policy=policy,
        )

    def position_size(
        self,
        account: AccountContext,
        entry: float,
        stop: float,
        risk_multiplier: float = 1.0,
    ) -> PositionSizeResult:
        """
        Calculate position size using fixed fractional risk.

        1. Risk amount = equity * max_risk_per_trade * session risk multiplier
        2. Size = risk amount / |entry - stop|
        3. Clamped to equity * max_position_size / entry

        A zero risk distance gives size 0.
        """
        risk_per_unit = abs(entry - stop)
        if entry <= 0 or risk_per_unit == 0:
            return PositionSizeResult(
                size=0.0,
                position_value=0.0,
                risk_amount=0.0,
                risk_per_unit=risk_per_unit,
                limited_by="degenerate_risk",
            )

        risk_amount = account.equity * account.max_risk_per_trade * risk_multiplier
        size_by_risk = risk_amount / risk_per_unit
        size_by_position = account.equity * account.max_position_size / entry

        if size_by_risk <= size_by_position:
            size, limited_by = size_by_risk, "risk_per_trade"
        else:
            size, limited_by = size_by_position, "max_position_size"

        return PositionSizeResult(
            size=size,
            position_value=size * entry,
            risk_amount=size * risk_per_unit,
            risk_per_unit=risk_per_unit,
            limited_by=limited_by,
        )

    def confidence(self, weighted_score: float, technical_agreement: bool = False) -> float:
        """Confluence score scaled to [0, 1] plus the agreement bonus, capped at 1."""
        value = weighted_score / 100.0
        if technical_agreement:
            value += self.config.agreement_bonus
        return max(0.0, min(1.0, value))

    def assess(
        self,
        symbol: str,
        entry: float,
        anchor: float,
        direction: PatternDirection,
        account: AccountContext,
        weighted_score: float,
        risk_multiplier: float = 1.0,
        atr: Optional[float] = None,
        pattern_label: Optional[str] = None,
        technical_agreement: bool = False,
    ) -> Optional[RiskAssessment]:
        """
        Full risk pass for one candidate.

        Returns:
            RiskAssessment, or None when the risk is degenerate or the size
            comes out as zero (logged at warning)
        """
        try:
            levels = self.trade_levels(entry, anchor, direction, atr, pattern_label)
        except DegenerateRiskError as e:
            e.symbol = symbol
            e.details["symbol"] = symbol
            logger.warning(f"{symbol}: dropping {pattern_label or 'setup'}: {e}")
            return None

        position = self.position_size(account, levels.entry, levels.stop_loss, risk_multiplier)
        if position.size <= 0:
            logger.warning(
                f"{symbol}: dropping {pattern_label or 'setup'}: position size 0 ({position.limited_by})"
            )
            return None

        logger.debug(
            f"{symbol}: {pattern_label} size {position.size:.4f} @ {levels.entry:.2f} "
            f"(stop {levels.stop_loss:.2f}, target {levels.take_profit:.2f}, limited_by: {position.limited_by})"
        )

        return RiskAssessment(
            levels=levels,
            position=position,
            confidence=self.confidence(weighted_score, technical_agreement),
        )
