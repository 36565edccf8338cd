"""
Harmonic (ABCD) Pattern Detector
Validates consecutive swing groups as ABCD patterns with Fibonacci targets.

This service provides:
1. Leg measurement and ratio validation (BC retracement, CD/AB ratio)
2. Extension-bucket Fibonacci targets projected from C
3. Composite confluence via the ConfluenceScorer and the strength floor
4. A per-symbol active pattern book with TTL and a freshness gate
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Optional, Sequence, Tuple

from ..config.scanner_config import PatternConfig
from ..models.market import IndicatorSnapshot
from ..models.signals import PatternDirection
from .candle_validator import Candle
from .confluence_scorer import ConfluenceCandidate, ConfluenceResult, ConfluenceScorer
from .swing_detector import SwingDetector, SwingPoint

logger = logging.getLogger(__name__)

TARGET_MULTIPLIERS = (1.27, 1.618, 2.0, 2.618)


@dataclass(frozen=True)
class FibonacciTargets:
    """Extension targets projected from C"""
    ext127: float
    ext161: float
    ext200: float
    ext261: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.ext127, self.ext161, self.ext200, self.ext261)


@dataclass
class ABCDPattern:
    """A validated ABCD harmonic pattern"""
    a: SwingPoint
    b: SwingPoint
    c: SwingPoint
    d: SwingPoint
    ab_length: float
    bc_length: float
    cd_length: float
    bc_retracement: float
    abcd_ratio: float
    extension: float
    targets: FibonacciTargets
    direction: PatternDirection
    fibonacci_match: bool
    trend_alignment: bool = False
    volume_confirmation: bool = False
    technical_confirmation: bool = False
    strength: float = 0.0
    confluence: Optional[ConfluenceResult] = None
    consumed: bool = False

    label = "ABCD"

    @property
    def anchor(self) -> float:
        return self.a.price

    @property
    def pattern_range(self) -> float:
        return self.cd_length

    def same_as(self, other: "ABCDPattern") -> bool:
        return (self.a.timestamp, self.d.timestamp) == (other.a.timestamp, other.d.timestamp)


def extension_for(bc_retracement: float) -> Optional[float]:
    """Extension multiple used to size the projected CD leg."""
    if bc_retracement <= 0.618:
        return 1.618
    if bc_retracement <= 0.786:
        return 1.27
    if bc_retracement <= 0.886:
        return 1.0
    return None


class HarmonicDetector:
    """
    Detects ABCD patterns from swing points.

    Groups of four consecutive swings are examined from the most recent
    backwards; the first group that passes geometry, composite confluence
    and the strength floor wins.
    """

    def __init__(
        self,
        config: Optional[PatternConfig] = None,
        scorer: Optional[ConfluenceScorer] = None,
        swings: Optional[SwingDetector] = None,
    ):
        """
        Initialize detector.

        Args:
            config: Swing and ABCD thresholds
            scorer: Confluence scorer used for the composite check
            swings: Swing extractor (default: built from config)
        """
        self.config = config or PatternConfig()
        self.scorer = scorer or ConfluenceScorer()
        self.swings = swings or SwingDetector(
            lookback=self.config.swing_lookback,
            min_history=self.config.min_history_for_swings,
        )

    def measure(self, a: SwingPoint, b: SwingPoint, c: SwingPoint, d: SwingPoint) -> Optional[ABCDPattern]:
        """
        Geometry-only validation of one swing group.

        Returns:
            ABCDPattern without confluence, or None when a ratio is out of bounds
        """
        cfg = self.config
        ab = abs(b.price - a.price)
        bc = abs(c.price - b.price)
        cd = abs(d.price - c.price)

        min_leg = a.price * cfg.min_swing_size_pct / 100
        if ab < min_leg or cd < min_leg or ab == 0:
            return None

        bc_retracement = bc / ab
        if not cfg.bc_retracement_min <= bc_retracement <= cfg.bc_retracement_max:
            return None

        abcd_ratio = cd / ab
        if not cfg.abcd_ratio_min <= abcd_ratio <= cfg.abcd_ratio_max:
            return None

        extension = extension_for(bc_retracement)
        if extension is None:
            return None

        direction = PatternDirection.BULLISH if a.price < b.price else PatternDirection.BEARISH
        sign = 1 if direction == PatternDirection.BULLISH else -1
        base_leg = bc * extension
        targets = FibonacciTargets(*(c.price + sign * base_leg * m for m in TARGET_MULTIPLIERS))

        tolerance = d.price * cfg.fib_tolerance
        fibonacci_match = any(abs(d.price - t) <= tolerance for t in targets.as_tuple())

        return ABCDPattern(
            a=a, b=b, c=c, d=d,
            ab_length=ab,
            bc_length=bc,
            cd_length=cd,
            bc_retracement=bc_retracement,
            abcd_ratio=abcd_ratio,
            extension=extension,
            targets=targets,
            direction=direction,
            fibonacci_match=fibonacci_match,
        )

    def detect(
        self,
        candles: Sequence[Candle],
        snapshot: IndicatorSnapshot,
        enabled_factors: Optional[FrozenSet[str]] = None,
    ) -> Optional[ABCDPattern]:
        """
        Find the most recent signal-eligible ABCD pattern in the window.

        Args:
            candles: Candle window, oldest first
            snapshot: Indicators for the most recent bar
            enabled_factors: Confluence factors allowed in the current session
        """
        swings = self.swings.find_swings(candles)
        if len(swings) < 4:
            return None

        cfg = self.config
        last_group = len(swings) - 4
        first_group = max(0, last_group - cfg.max_pattern_groups + 1)

        for i in range(last_group, first_group - 1, -1):
            pattern = self.measure(*swings[i:i + 4])
            if pattern is None:
                continue

            result = self.scorer.score(
                ConfluenceCandidate(
                    direction=pattern.direction,
                    price=pattern.d.price,
                    index=pattern.d.index,
                    targets=pattern.targets.as_tuple(),
                    fib_tolerance=cfg.fib_tolerance,
                ),
                snapshot,
                candles,
                enabled_factors,
            )
            strength = min(95.0, result.weighted_score)
            if not result.eligible or strength < cfg.abcd_min_strength:
                logger.debug(
                    f"ABCD group at swing {i} rejected: {result.summary()}, strength {strength:.0f}"
                )
                continue

            pattern.confluence = result
            pattern.strength = strength
            pattern.trend_alignment = result.passed("trend")
            pattern.volume_confirmation = result.passed("volume")
            pattern.technical_confirmation = result.passed("technical")
            return pattern

        return None


class PatternBook:
    """
    Active ABCD pattern of one symbol.

    Holds the latest qualifying pattern until a newer one supersedes it or
    its D point ages past the TTL.
    """

    def __init__(self, ttl_seconds: float = 24 * 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._active: Optional[ABCDPattern] = None

    @property
    def active(self) -> Optional[ABCDPattern]:
        return self._active

    def prune(self, now: datetime) -> None:
        if self._active is not None and now - self._active.d.timestamp > self.ttl:
            logger.debug(f"ABCD pattern with D at {self._active.d.timestamp.isoformat()} expired")
            self._active = None

    def record(self, pattern: ABCDPattern) -> ABCDPattern:
        """Store pattern unless it is the one already held; returns the active entry."""
        current = self._active
        if current is not None and current.same_as(pattern):
            return current
        if current is None or pattern.d.timestamp >= current.d.timestamp:
            self._active = pattern
        return self._active

    def mark_consumed(self) -> None:
        if self._active is not None:
            self._active.consumed = True

    def is_fresh(self, pattern: ABCDPattern, candle: Candle, fib_tolerance: float) -> bool:
        """Tradeable on this candle: within TTL of D and closing near D."""
        if candle.timestamp - pattern.d.timestamp > self.ttl:
            return False
        return abs(candle.close - pattern.d.price) <= pattern.d.price * fib_tolerance
