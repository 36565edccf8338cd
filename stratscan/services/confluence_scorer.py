"""
Confluence Scorer
Weighted six-factor confirmation of a candidate setup.

Factors and default weights:
    fibonacci   3  price within tolerance of a computed Fibonacci target
    trend       2  price and EMA ladder strictly ordered with the direction
    volume      2  bar volume above the volume SMA times a multiplier
    technical   2  candlestick/chart pattern pointing the same way
    oscillator  1  RSI oversold/overbought or in the neutral band
    momentum    1  MACD histogram and line/signal cross agree

weighted_score = sum of passing weights x 10, capped at 100.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..config.scanner_config import ConfluenceConfig, FACTOR_NAMES
from ..models.market import IndicatorSnapshot
from ..models.signals import PatternDirection
from .candle_validator import Candle
from .technical_patterns import TechnicalPatternDetector

logger = logging.getLogger(__name__)


@dataclass
class ConfluenceCandidate:
    """What the scorer needs to know about a setup"""
    direction: PatternDirection
    price: float
    index: int  # bar at which volume and technical patterns are checked
    targets: Tuple[float, ...] = ()
    fib_tolerance: float = 0.02


@dataclass
class FactorResult:
    """Outcome of one factor"""
    name: str
    passed: bool
    weight: float
    detail: str = ""


@dataclass
class ConfluenceResult:
    """Result of confluence scoring"""
    satisfied_count: int
    weighted_score: float
    factors: Dict[str, FactorResult] = field(default_factory=dict)
    eligible: bool = False

    def passed(self, name: str) -> bool:
        factor = self.factors.get(name)
        return bool(factor and factor.passed)

    def summary(self) -> str:
        passed = [name for name, f in self.factors.items() if f.passed]
        return f"confluence {self.satisfied_count}/6 score {self.weighted_score:.0f} ({', '.join(passed) or 'none'})"


class ConfluenceScorer:
    """
    Scores candidates against the six confluence factors.

    Trend, oscillator and momentum read the indicator snapshot of the most
    recent bar. Volume and technical factors are evaluated at the
    candidate's own bar.
    """

    def __init__(
        self,
        config: Optional[ConfluenceConfig] = None,
        technical: Optional[TechnicalPatternDetector] = None,
    ):
        """
        Initialize scorer.

        Args:
            config: Factor weights and thresholds
            technical: Detector used for the technical-pattern factor
        """
        self.config = config or ConfluenceConfig()
        self.technical = technical or TechnicalPatternDetector()

        self._checks: Dict[str, Callable[..., Tuple[bool, str]]] = {
            "fibonacci": self._check_fibonacci,
            "trend": self._check_trend,
            "volume": self._check_volume,
            "technical": self._check_technical,
            "oscillator": self._check_oscillator,
            "momentum": self._check_momentum,
        }

    def score(
        self,
        candidate: ConfluenceCandidate,
        snapshot: IndicatorSnapshot,
        candles: Sequence[Candle],
        enabled_factors: Optional[FrozenSet[str]] = None,
    ) -> ConfluenceResult:
        """
        Evaluate every factor for the candidate.

        Args:
            candidate: Direction, price, evaluation index and targets
            snapshot: Indicators for the most recent bar
            candles: The symbol's candle window
            enabled_factors: Factors the current session allows (None = all)

        Returns:
            ConfluenceResult with the per-factor breakdown and eligibility
        """
        factors: Dict[str, FactorResult] = {}
        for name in FACTOR_NAMES:
            weight = self.config.weights.get(name, 0.0)
            if enabled_factors is not None and name not in enabled_factors:
                factors[name] = FactorResult(name, False, weight, "disabled for session")
                continue
            passed, detail = self._checks[name](candidate, snapshot, candles)
            factors[name] = FactorResult(name, passed, weight, detail)

        satisfied = sum(1 for f in factors.values() if f.passed)
        weighted = min(100.0, sum(f.weight for f in factors.values() if f.passed) * 10)
        eligible = satisfied >= self.config.min_confluence and weighted >= self.config.min_weighted_score

        return ConfluenceResult(
            satisfied_count=satisfied,
            weighted_score=weighted,
            factors=factors,
            eligible=eligible,
        )

    # ===== Factors =====

    @staticmethod
    def _check_fibonacci(candidate: ConfluenceCandidate, snapshot, candles) -> Tuple[bool, str]:
        if not candidate.targets:
            return False, "no targets"
        tolerance = candidate.price * candidate.fib_tolerance
        for target in candidate.targets:
            if abs(candidate.price - target) <= tolerance:
                return True, f"price {candidate.price:.2f} near target {target:.2f}"
        return False, f"no target within {tolerance:.2f}"

    def _check_trend(self, candidate: ConfluenceCandidate, snapshot: IndicatorSnapshot, candles) -> Tuple[bool, str]:
        ladder: List[float] = []
        for period in self.config.ema_periods:
            value = snapshot.ema.get(period)
            if value is None:
                return False, f"EMA{period} missing"
            ladder.append(value)

        levels = [candidate.price] + ladder
        if candidate.direction == PatternDirection.BULLISH:
            aligned = all(a > b for a, b in zip(levels, levels[1:]))
        else:
            aligned = all(a < b for a, b in zip(levels, levels[1:]))
        return aligned, "EMA ladder aligned" if aligned else "EMA ladder not aligned"

    def _check_volume(self, candidate: ConfluenceCandidate, snapshot: IndicatorSnapshot, candles) -> Tuple[bool, str]:
        if not 0 <= candidate.index < len(candles):
            return False, "index outside window"
        volume = candles[candidate.index].volume
        if volume is None or not snapshot.volume_sma:
            return False, "volume missing"
        threshold = snapshot.volume_sma * self.config.volume_multiplier
        return volume > threshold, f"volume {volume:.0f} vs {threshold:.0f}"

    def _check_technical(self, candidate: ConfluenceCandidate, snapshot, candles) -> Tuple[bool, str]:
        matches = [
            p.kind.value for p in self.technical.detect(candles, candidate.index)
            if p.agrees_with(candidate.direction)
        ]
        return bool(matches), ", ".join(matches) or "no confirming pattern"

    def _check_oscillator(self, candidate: ConfluenceCandidate, snapshot: IndicatorSnapshot, candles) -> Tuple[bool, str]:
        rsi = snapshot.rsi
        if rsi is None:
            return False, "RSI missing"
        cfg = self.config
        neutral = cfg.rsi_neutral_low < rsi < cfg.rsi_neutral_high
        if candidate.direction == PatternDirection.BULLISH:
            passed = rsi < cfg.rsi_oversold or neutral
        else:
            passed = rsi > cfg.rsi_overbought or neutral
        return passed, f"RSI {rsi:.1f}"

    @staticmethod
    def _check_momentum(candidate: ConfluenceCandidate, snapshot: IndicatorSnapshot, candles) -> Tuple[bool, str]:
        macd = snapshot.macd
        if macd is None:
            return False, "MACD missing"
        if candidate.direction == PatternDirection.BULLISH:
            passed = macd.histogram > 0 and macd.macd > macd.signal
        else:
            passed = macd.histogram < 0 and macd.macd < macd.signal
        return passed, f"MACD hist {macd.histogram:.4f}"
