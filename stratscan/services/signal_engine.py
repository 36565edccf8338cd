"""
Signal Engine
Per-symbol pipeline from a validated candle window to an emitted TradeSignal.

Pipeline for one symbol on one tick:
1. Candidates from the Strat recognizer, the ABCD detector (through the
   symbol's active pattern book) and the session pattern families
2. Confluence scoring of every candidate with the session's factor set
3. Best eligible candidate, subject to the signal throttle
4. Stops, target, size and confidence from the risk calculator
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from ..config.scanner_config import ScannerConfig
from ..models.market import AccountContext, IndicatorSnapshot, RawCandle
from ..models.signals import PatternDirection, SignalDirection, TradeSignal
from .bar_classifier import BarClassifier
from .candle_validator import Candle, CandleValidator, ValidationResult
from .confluence_scorer import ConfluenceCandidate, ConfluenceResult, ConfluenceScorer
from .harmonic_detector import ABCDPattern, HarmonicDetector, PatternBook
from .history import SymbolHistory
from .risk_calculator import RiskAssessment, RiskCalculator
from .session_patterns import SessionPatternDetector
from .session_scheduler import PatternFamily, SessionInfo
from .signal_throttle import SignalThrottle
from .strat_patterns import StratPatternRecognizer
from .technical_patterns import TechnicalPatternDetector

logger = logging.getLogger(__name__)

# Tie-break between equally scored candidates
SOURCE_PRIORITY = {
    PatternFamily.ABCD: 3,
    PatternFamily.STRAT: 2,
}


@dataclass
class SymbolScanState:
    """Everything the pipeline mutates for one (symbol, interval)"""
    symbol: str
    interval: str
    history: SymbolHistory
    throttle: SignalThrottle
    patterns: PatternBook
    rejected_candles: int = 0
    signals_emitted: int = 0

    @property
    def last_timestamp(self):
        last = self.history.last
        return last.timestamp if last else None


@dataclass
class SignalCandidate:
    """A setup from any detector, normalized for scoring and risk"""
    source: PatternFamily
    label: str
    direction: PatternDirection
    entry: float
    anchor: float
    index: int
    targets: Tuple[float, ...] = ()
    notes: List[str] = field(default_factory=list)
    abcd: Optional[ABCDPattern] = None
    confluence: Optional[ConfluenceResult] = None

    @property
    def priority(self) -> int:
        return SOURCE_PRIORITY.get(self.source, 1)


class SignalEngine:
    """
    Stateless pipeline over SymbolScanState.

    One engine serves every symbol; per-symbol state is passed in.
    """

    def __init__(self, config: Optional[ScannerConfig] = None):
        """
        Initialize engine.

        Args:
            config: Scanner configuration (default: built from the environment)
        """
        self.config = config or ScannerConfig()
        pcfg = self.config.patterns

        self.validator = CandleValidator(min_bar_range=pcfg.min_bar_range)
        self.technical = TechnicalPatternDetector(doji_body_ratio=pcfg.doji_body_ratio)
        self.scorer = ConfluenceScorer(self.config.confluence, self.technical)
        self.strat = StratPatternRecognizer(
            min_strength=pcfg.min_strat_strength,
            classifier=BarClassifier(pcfg.tie_break),
        )
        self.harmonic = HarmonicDetector(pcfg, self.scorer)
        self.session_patterns = SessionPatternDetector(pcfg)
        self.risk = RiskCalculator(self.config.risk)

    def new_state(self, symbol: str, interval: Optional[str] = None) -> SymbolScanState:
        interval = interval or self.config.interval
        return SymbolScanState(
            symbol=symbol,
            interval=interval,
            history=SymbolHistory(symbol, interval, self.config.max_history_length),
            throttle=SignalThrottle(self.config.throttle),
            patterns=PatternBook(self.config.patterns.pattern_ttl_seconds),
        )

    # ==================== INGEST ====================

    def ingest(self, state: SymbolScanState, raw: Union[RawCandle, Mapping[str, Any]]) -> ValidationResult:
        """Validate a raw record against the symbol history and append it if accepted."""
        result = self.validator.validate(raw, state.history.last, state.symbol, state.interval)
        if not result.accepted:
            state.rejected_candles += 1
            logger.debug(f"{state.symbol}: candle rejected ({result.reason.value}) {result.detail}")
            return result
        state.history.append(result.candle)
        return result

    # ==================== CANDIDATES ====================

    def collect_candidates(
        self,
        state: SymbolScanState,
        candles: Sequence[Candle],
        snapshot: IndicatorSnapshot,
        session: SessionInfo,
    ) -> List[SignalCandidate]:
        """Run every detector family the session enables."""
        candidates: List[SignalCandidate] = []
        last = len(candles) - 1
        current = candles[-1]

        if session.allows(PatternFamily.STRAT):
            pattern = self.strat.detect(candles)
            if pattern is not None:
                if pattern.confidence >= self.config.patterns.min_strat_confidence:
                    candidates.append(SignalCandidate(
                        source=PatternFamily.STRAT,
                        label=pattern.sequence_label,
                        direction=pattern.direction,
                        entry=pattern.entry,
                        anchor=pattern.anchor,
                        index=last,
                        notes=[f"Strat {pattern.sequence_label} strength {pattern.strength:.0f} "
                               f"confidence {pattern.confidence:.0f}"],
                    ))
                else:
                    logger.debug(
                        f"{state.symbol}: {pattern.sequence_label} below confidence floor ({pattern.confidence:.0f})"
                    )

        if session.allows(PatternFamily.ABCD):
            candidate = self._abcd_candidate(state, candles, snapshot, session)
            if candidate is not None:
                candidates.append(candidate)

        for hit in self.session_patterns.detect(candles, session):
            candidates.append(SignalCandidate(
                source=hit.family,
                label=hit.label,
                direction=hit.direction,
                entry=hit.entry,
                anchor=hit.anchor,
                index=last,
                notes=[f"{hit.label} ({hit.family.value})"],
            ))

        logger.debug(f"{state.symbol}: {len(candidates)} candidates at {current.timestamp.isoformat()}")
        return candidates

    def _abcd_candidate(
        self,
        state: SymbolScanState,
        candles: Sequence[Candle],
        snapshot: IndicatorSnapshot,
        session: SessionInfo,
    ) -> Optional[SignalCandidate]:
        current = candles[-1]
        book = state.patterns
        book.prune(current.timestamp)

        found = self.harmonic.detect(candles, snapshot, session.enabled_factors)
        if found is not None:
            book.record(found)

        active = book.active
        if active is None or active.consumed:
            return None
        tolerance = self.config.patterns.fib_tolerance
        if not book.is_fresh(active, current, tolerance):
            return None

        index = _index_of(candles, active.d.timestamp)
        if index is None:
            return None

        return SignalCandidate(
            source=PatternFamily.ABCD,
            label=active.label,
            direction=active.direction,
            entry=current.close,
            anchor=active.anchor,
            index=index,
            targets=active.targets.as_tuple(),
            abcd=active,
            notes=[f"ABCD bc {active.bc_retracement:.3f} cd/ab {active.abcd_ratio:.3f} "
                   f"strength {active.strength:.0f}"],
        )

    # ==================== EVALUATE ====================

    def score_candidates(
        self,
        candidates: List[SignalCandidate],
        candles: Sequence[Candle],
        snapshot: IndicatorSnapshot,
        session: SessionInfo,
    ) -> List[SignalCandidate]:
        """Score every candidate and return the eligible ones, best first."""
        eligible = []
        for candidate in candidates:
            price = candidate.abcd.d.price if candidate.abcd else candidate.entry
            candidate.confluence = self.scorer.score(
                ConfluenceCandidate(
                    direction=candidate.direction,
                    price=price,
                    index=candidate.index,
                    targets=candidate.targets,
                    fib_tolerance=self.config.patterns.fib_tolerance,
                ),
                snapshot,
                candles,
                session.enabled_factors,
            )
            if candidate.confluence.eligible:
                eligible.append(candidate)
            else:
                logger.debug(f"{candidate.label}: {candidate.confluence.summary()} below threshold")

        eligible.sort(key=lambda c: (c.confluence.weighted_score, c.priority), reverse=True)
        return eligible

    def evaluate(
        self,
        state: SymbolScanState,
        snapshot: IndicatorSnapshot,
        session: SessionInfo,
        account: AccountContext,
    ) -> Optional[TradeSignal]:
        """
        Run the full pipeline on the symbol's current window.

        Returns:
            TradeSignal, or None when nothing qualifies this tick
        """
        candles = state.history.snapshot()
        if len(candles) < 3 or not session.is_open:
            return None

        eligible = self.score_candidates(
            self.collect_candidates(state, candles, snapshot, session),
            candles,
            snapshot,
            session,
        )
        if not eligible:
            return None

        now = candles[-1].timestamp
        allowed, reason = state.throttle.check(now)
        if not allowed:
            logger.info(f"{state.symbol}: {eligible[0].label} throttled: {reason}")
            return None

        for candidate in eligible:
            assessment = self._assess(state.symbol, candidate, candles, snapshot, session, account)
            if assessment is None:
                continue

            signal = self._build_signal(state, candidate, assessment, session, now)
            state.throttle.record(now)
            state.signals_emitted += 1
            if candidate.abcd is not None:
                state.patterns.mark_consumed()
            logger.info(
                f"Signal {signal.symbol} {signal.direction.value} {signal.pattern_label} "
                f"@ {signal.entry_price:.2f} stop {signal.stop_loss:.2f} target {signal.take_profit:.2f} "
                f"size {signal.position_size:.4f} confidence {signal.confidence:.2f}"
            )
            return signal

        return None

    def _assess(
        self,
        symbol: str,
        candidate: SignalCandidate,
        candles: Sequence[Candle],
        snapshot: IndicatorSnapshot,
        session: SessionInfo,
        account: AccountContext,
    ) -> Optional[RiskAssessment]:
        agreement = self.technical.agrees_within(
            candles,
            candidate.index,
            candidate.direction,
            self.config.risk.agreement_window_bars,
        )
        return self.risk.assess(
            symbol=symbol,
            entry=candidate.entry,
            anchor=candidate.anchor,
            direction=candidate.direction,
            account=account,
            weighted_score=candidate.confluence.weighted_score,
            risk_multiplier=session.risk_multiplier,
            atr=snapshot.atr,
            pattern_label=candidate.label,
            technical_agreement=agreement,
        )

    @staticmethod
    def _build_signal(
        state: SymbolScanState,
        candidate: SignalCandidate,
        assessment: RiskAssessment,
        session: SessionInfo,
        now,
    ) -> TradeSignal:
        levels = assessment.levels
        reasoning = list(candidate.notes)
        reasoning.append(candidate.confluence.summary())
        reasoning.append(
            f"{levels.stop_policy} stop, {levels.risk_reward_ratio:.1f}R target, "
            f"size limited by {assessment.position.limited_by}"
        )
        reasoning.append(f"{session.session.value} session, risk x{session.risk_multiplier}")

        return TradeSignal(
            symbol=state.symbol,
            direction=SignalDirection.from_pattern(candidate.direction),
            confidence=assessment.confidence,
            entry_price=levels.entry,
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            position_size=assessment.position.size,
            pattern_label=candidate.label,
            reasoning=reasoning,
            risk_reward_ratio=levels.risk_reward_ratio,
            timestamp=now,
            session=session.session,
            interval=state.interval,
        )


def _index_of(candles: Sequence[Candle], timestamp) -> Optional[int]:
    for i in range(len(candles) - 1, -1, -1):
        if candles[i].timestamp == timestamp:
            return i
    return None
