"""
Scanner
Session-aware async loop that runs the signal engine over a watchlist.

Each tick:
1. Classify the session and resize the shared API budget
2. Fetch new candles for every symbol concurrently
3. Fetch indicators through the rate limiter, retry and circuit breaker
4. Evaluate the engine and dispatch any signal fire-and-forget
"""
import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..config.scanner_config import ScannerConfig, get_scanner_config
from ..exceptions import StratScanError
from ..models.market import IndicatorSnapshot
from ..models.signals import TradeSignal
from .candle_validator import Candle
from .indicators import LocalIndicatorProvider
from .logging_config import clear_correlation_id, log_method, set_correlation_id
from .providers import AccountProvider, CandleFeed, IndicatorProvider
from .resilience import AsyncTokenBucket, ServiceCircuitBreaker, with_retry
from .session_scheduler import SessionInfo, SessionScheduler
from .signal_dispatcher import SignalDispatcher, WebhookSignalSink
from .signal_engine import SignalEngine, SymbolScanState
from .signal_throttle import SignalThrottle

logger = logging.getLogger(__name__)


class ScannerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class Scanner:
    """
    Owns per-symbol scan state, the dispatcher and the collaborator guards.
    """

    def __init__(
        self,
        feed: CandleFeed,
        accounts: AccountProvider,
        indicators: Optional[IndicatorProvider] = None,
        config: Optional[ScannerConfig] = None,
        dispatcher: Optional[SignalDispatcher] = None,
        engine: Optional[SignalEngine] = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        breaker_threshold: int = 5,
        breaker_timeout: float = 60.0,
    ):
        """
        Initialize scanner.

        Args:
            feed: Candle source
            accounts: Equity and sizing limits
            indicators: Indicator provider (default: computed locally)
            config: Scanner configuration (default: the shared instance, re-read
                every tick so reload_scanner_config() reaches a running scanner)
            dispatcher: Signal fan-out (default: new dispatcher)
            engine: Signal engine (default: built from config)
            retry_attempts: Attempts per indicator fetch
            retry_base_delay: First backoff delay in seconds
            breaker_threshold: Consecutive provider failures before the circuit opens
            breaker_timeout: Seconds the circuit stays open
        """
        self._follow_reloads = config is None
        self._owns_indicators = indicators is None
        self.config = config or get_scanner_config()
        self.feed = feed
        self.accounts = accounts
        self.indicators = indicators or LocalIndicatorProvider(ema_periods=self.config.confluence.ema_periods)
        self.engine = engine or SignalEngine(self.config)
        self.dispatcher = dispatcher or SignalDispatcher()
        self.scheduler = SessionScheduler(self.config.session)

        initial = self.scheduler.classify()
        self.rate_limiter = AsyncTokenBucket(initial.api_budget_per_minute)
        self.indicator_breaker = ServiceCircuitBreaker(
            getattr(self.indicators, "name", type(self.indicators).__name__),
            failure_threshold=breaker_threshold,
            recovery_timeout=breaker_timeout,
        )
        self._fetch_snapshot = with_retry(
            max_attempts=retry_attempts,
            base_delay=retry_base_delay,
        )(self._fetch_snapshot_once)

        self.webhook: Optional[WebhookSignalSink] = None
        if self.config.webhook_url:
            self.webhook = WebhookSignalSink(self.config.webhook_url, timeout=self.config.http_timeout_seconds)
            self.dispatcher.subscribe(self.webhook)

        self.states: Dict[str, SymbolScanState] = {}
        self.state = ScannerState.STOPPED
        self.last_session: Optional[SessionInfo] = None
        self.ticks = 0
        self.errors = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def watchlist(self) -> List[str]:
        return list(self.config.watchlist)

    def state_for(self, symbol: str) -> SymbolScanState:
        state = self.states.get(symbol)
        if state is None:
            state = self.engine.new_state(symbol, self.config.interval)
            self.states[symbol] = state
        return state

    def apply_config(self, config: ScannerConfig) -> None:
        """
        Switch to a new configuration between ticks.

        Candle histories, throttle counters and active ABCD patterns carry
        over under the new limits. Symbols that left the watchlist, or whose
        interval changed, lose their state. The webhook sink and the
        collaborator guards are kept as built.
        """
        self.config = config
        self.engine = SignalEngine(config)
        self.scheduler = SessionScheduler(config.session)
        if self._owns_indicators:
            self.indicators = LocalIndicatorProvider(ema_periods=config.confluence.ema_periods)

        watchlist = set(config.watchlist)
        for symbol in list(self.states):
            state = self.states[symbol]
            if symbol not in watchlist or state.interval != config.interval:
                del self.states[symbol]
                continue
            state.history.resize(config.max_history_length)
            state.throttle = SignalThrottle(config.throttle, state=state.throttle.state)
            state.patterns.ttl = timedelta(seconds=config.patterns.pattern_ttl_seconds)

        logger.info(
            f"Scanner configuration applied: {len(self.watchlist)} symbols, interval {config.interval}, "
            f"{len(self.states)} histories kept"
        )

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        if self.state == ScannerState.RUNNING:
            logger.warning("Scanner is already running")
            return
        if not self.watchlist:
            logger.warning("Scanner started with an empty watchlist")

        self._stop_event = asyncio.Event()
        self.state = ScannerState.RUNNING
        self._task = asyncio.create_task(self._main_loop())
        logger.info(f"Scanner started: {len(self.watchlist)} symbols, interval {self.config.interval}")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Stop scheduling ticks, wait for the current one, then flush deliveries."""
        if self.state == ScannerState.STOPPED:
            return

        logger.info("Stopping scanner...")
        self.state = ScannerState.STOPPING
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            await self._task
            self._task = None

        await self.dispatcher.drain(timeout=drain_timeout)
        if self.webhook:
            await self.webhook.aclose()
        self.state = ScannerState.STOPPED
        logger.info("Scanner stopped")

    async def _main_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                self.errors += 1
                logger.error(f"Scan pass failed: {e}", exc_info=True)

            interval = self.last_session.scan_interval if self.last_session else 60
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # ==================== SCAN PASS ====================

    @log_method(level=logging.DEBUG)
    async def run_once(self, now: Optional[datetime] = None) -> List[TradeSignal]:
        """
        One pass over the watchlist.

        Args:
            now: Moment used for session classification (default: wall clock)

        Returns:
            Signals emitted this pass
        """
        set_correlation_id()
        try:
            if self._follow_reloads:
                latest = get_scanner_config()
                if latest is not self.config:
                    self.apply_config(latest)

            session = self.scheduler.classify(now)
            if self.last_session is None or session.session != self.last_session.session:
                logger.info(
                    f"Session {session.session.value}: every {session.scan_interval}s, "
                    f"{session.api_budget_per_minute} calls/min, risk x{session.risk_multiplier}"
                )
            self.last_session = session
            self.rate_limiter.resize(session.api_budget_per_minute)
            self.ticks += 1

            if not session.is_open and self.config.skip_closed_session:
                logger.debug("Market closed, skipping scan")
                return []

            results = await asyncio.gather(*(self._scan_guarded(symbol, session) for symbol in self.watchlist))
            signals = [signal for signal in results if signal is not None]
            if signals:
                logger.info(f"Scan pass emitted {len(signals)} signal(s)")
            return signals
        finally:
            clear_correlation_id()

    async def _scan_guarded(self, symbol: str, session: SessionInfo) -> Optional[TradeSignal]:
        try:
            return await self.scan_symbol(symbol, session)
        except StratScanError as e:
            self.errors += 1
            logger.error(f"{symbol}: {e}")
        except Exception as e:
            self.errors += 1
            logger.error(f"{symbol}: unexpected error during scan: {e}", exc_info=True)
        return None

    async def scan_symbol(self, symbol: str, session: SessionInfo) -> Optional[TradeSignal]:
        """Fetch, validate, evaluate and dispatch for one symbol."""
        state = self.state_for(symbol)

        records = await self.feed.fetch_candles(symbol, state.interval, state.last_timestamp)
        accepted = sum(1 for raw in records if self.engine.ingest(state, raw).accepted)
        if accepted == 0:
            logger.debug(f"{symbol}: no new candles")
            return None

        candles = state.history.snapshot()
        if len(candles) < 3:
            return None

        snapshot = await self._fetch_snapshot(symbol, state.interval, candles)
        account = await self.accounts.get_account()

        signal = self.engine.evaluate(state, snapshot, session, account)
        if signal is not None:
            self.dispatcher.dispatch(signal)
        return signal

    async def _fetch_snapshot_once(
        self,
        symbol: str,
        interval: str,
        candles: Sequence[Candle],
    ) -> IndicatorSnapshot:
        await self.rate_limiter.acquire(timeout=self.last_session.scan_interval if self.last_session else None)
        return await self.indicator_breaker.call(
            lambda: self.indicators.get_snapshot(symbol, interval, self.config.indicator_lookback, candles)
        )

    def get_status(self) -> Dict[str, object]:
        return {
            "state": self.state.value,
            "session": self.last_session.session.value if self.last_session else None,
            "symbols": len(self.watchlist),
            "ticks": self.ticks,
            "errors": self.errors,
            "breaker": self.indicator_breaker.state.value,
            "dispatcher": self.dispatcher.get_stats(),
        }
