"""
Scanner Configuration
Centralized configuration for pattern detection, confluence scoring,
session scheduling, risk and throttling.

All values can be overridden via environment variables with the STRATSCAN_ prefix.
Example: STRATSCAN_MIN_CONFLUENCE=5 overrides ConfluenceConfig.min_confluence

A .env file is honoured when the config is loaded through load_scanner_config().
"""

import os
import logging
from dataclasses import dataclass, field, asdict
from datetime import time
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "STRATSCAN_"

FACTOR_NAMES = ("fibonacci", "trend", "volume", "technical", "oscillator", "momentum")


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable with fallback to default."""
    env_key = f"{ENV_PREFIX}{key.upper()}"
    value = os.getenv(env_key)
    if value is not None:
        try:
            result = float(value)
            logger.info(f"Config override: {key} = {result} (from {env_key})")
            return result
        except ValueError:
            logger.warning(f"Invalid float for {env_key}: {value}, using default {default}")
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with fallback to default."""
    env_key = f"{ENV_PREFIX}{key.upper()}"
    value = os.getenv(env_key)
    if value is not None:
        try:
            result = int(value)
            logger.info(f"Config override: {key} = {result} (from {env_key})")
            return result
        except ValueError:
            logger.warning(f"Invalid int for {env_key}: {value}, using default {default}")
    return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable with fallback to default."""
    env_key = f"{ENV_PREFIX}{key.upper()}"
    value = os.getenv(env_key)
    if value is not None:
        result = value.lower() in ('true', '1', 'yes', 'on')
        logger.info(f"Config override: {key} = {result} (from {env_key})")
        return result
    return default


def _get_env_str(key: str, default: Optional[str]) -> Optional[str]:
    """Get string from environment variable with fallback to default."""
    env_key = f"{ENV_PREFIX}{key.upper()}"
    value = os.getenv(env_key)
    if value is not None and value.strip():
        logger.info(f"Config override: {key} = {value} (from {env_key})")
        return value.strip()
    return default


def _get_env_list(key: str, default: List[str]) -> List[str]:
    """Get a comma-separated list from environment variable."""
    raw = _get_env_str(key, None)
    if raw is None:
        return list(default)
    return [item.strip().upper() for item in raw.split(',') if item.strip()]


def parse_clock(value: str) -> time:
    """Parse an 'HH:MM' string into a time. Raises ValueError on bad input."""
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


# =============================================================================
# Sections
# =============================================================================

@dataclass
class PatternConfig:
    """Bar classification, Strat, ABCD and session-family thresholds."""

    # ===== Candles & Bar Types =====
    # Minimum high-low range for a candle to be accepted
    min_bar_range: float = field(default_factory=lambda: _get_env_float('min_bar_range', 0.01))

    # Classification when high and low both equal the previous bar: inside, up or down
    tie_break: str = field(default_factory=lambda: _get_env_str('tie_break', 'inside'))

    # ===== Strat 3-Bar Patterns =====
    min_strat_strength: float = field(default_factory=lambda: _get_env_float('min_strat_strength', 40.0))
    min_strat_confidence: float = field(default_factory=lambda: _get_env_float('min_strat_confidence', 55.0))

    # ===== Swings & ABCD =====
    swing_lookback: int = field(default_factory=lambda: _get_env_int('swing_lookback', 5))
    min_history_for_swings: int = field(default_factory=lambda: _get_env_int('min_history_for_swings', 50))
    max_pattern_groups: int = field(default_factory=lambda: _get_env_int('max_pattern_groups', 20))

    # AB and CD legs must be at least this percent of A's price
    min_swing_size_pct: float = field(default_factory=lambda: _get_env_float('min_swing_size_pct', 0.5))

    bc_retracement_min: float = field(default_factory=lambda: _get_env_float('bc_retracement_min', 0.382))
    bc_retracement_max: float = field(default_factory=lambda: _get_env_float('bc_retracement_max', 0.886))
    abcd_ratio_min: float = field(default_factory=lambda: _get_env_float('abcd_ratio_min', 0.618))
    abcd_ratio_max: float = field(default_factory=lambda: _get_env_float('abcd_ratio_max', 1.618))
    fib_tolerance: float = field(default_factory=lambda: _get_env_float('fib_tolerance', 0.02))
    abcd_min_strength: float = field(default_factory=lambda: _get_env_float('abcd_min_strength', 70.0))

    # Active pattern book time-to-live
    pattern_ttl_seconds: int = field(default_factory=lambda: _get_env_int('pattern_ttl_seconds', 24 * 3600))

    # ===== Session Pattern Families =====
    breakout_threshold: float = field(default_factory=lambda: _get_env_float('breakout_threshold', 0.001))
    gap_threshold: float = field(default_factory=lambda: _get_env_float('gap_threshold', 0.005))
    premarket_gap_pct: float = field(default_factory=lambda: _get_env_float('premarket_gap_pct', 0.02))
    volume_explosion_multiplier: float = field(default_factory=lambda: _get_env_float('volume_explosion_multiplier', 2.0))
    volume_average_period: int = field(default_factory=lambda: _get_env_int('volume_average_period', 20))
    momentum_lookback: int = field(default_factory=lambda: _get_env_int('momentum_lookback', 5))
    momentum_min_bars: int = field(default_factory=lambda: _get_env_int('momentum_min_bars', 3))
    afterhours_range_ratio: float = field(default_factory=lambda: _get_env_float('afterhours_range_ratio', 0.5))

    # ===== Candlestick Shapes =====
    doji_body_ratio: float = field(default_factory=lambda: _get_env_float('doji_body_ratio', 0.1))

    def validate(self) -> List[str]:
        errors = []
        if self.min_bar_range < 0:
            errors.append(f"min_bar_range cannot be negative, got {self.min_bar_range}")
        if self.tie_break not in ('inside', 'up', 'down'):
            errors.append(f"tie_break must be one of inside/up/down, got {self.tie_break}")
        if self.swing_lookback < 1:
            errors.append(f"swing_lookback must be at least 1, got {self.swing_lookback}")
        if self.min_history_for_swings < 2 * self.swing_lookback + 1:
            errors.append(
                f"min_history_for_swings ({self.min_history_for_swings}) must cover a full swing window"
            )
        if self.max_pattern_groups < 1:
            errors.append(f"max_pattern_groups must be at least 1, got {self.max_pattern_groups}")
        if not 0 < self.bc_retracement_min < self.bc_retracement_max:
            errors.append(
                f"bc retracement bounds inverted: {self.bc_retracement_min} .. {self.bc_retracement_max}"
            )
        if not 0 < self.abcd_ratio_min < self.abcd_ratio_max:
            errors.append(f"abcd ratio bounds inverted: {self.abcd_ratio_min} .. {self.abcd_ratio_max}")
        if not 0 < self.fib_tolerance < 1:
            errors.append(f"fib_tolerance must be between 0 and 1, got {self.fib_tolerance}")
        if not 0 <= self.abcd_min_strength <= 100:
            errors.append(f"abcd_min_strength must be between 0 and 100, got {self.abcd_min_strength}")
        if not 0 <= self.min_strat_strength <= 100:
            errors.append(f"min_strat_strength must be between 0 and 100, got {self.min_strat_strength}")
        if not 0 <= self.min_strat_confidence <= 100:
            errors.append(f"min_strat_confidence must be between 0 and 100, got {self.min_strat_confidence}")
        if self.pattern_ttl_seconds <= 0:
            errors.append(f"pattern_ttl_seconds must be positive, got {self.pattern_ttl_seconds}")
        if self.momentum_min_bars > self.momentum_lookback:
            errors.append(
                f"momentum_min_bars ({self.momentum_min_bars}) exceeds momentum_lookback ({self.momentum_lookback})"
            )
        if self.volume_average_period < 1:
            errors.append(f"volume_average_period must be at least 1, got {self.volume_average_period}")
        return errors


def _default_weights() -> Dict[str, float]:
    defaults = {
        "fibonacci": 3.0,
        "trend": 2.0,
        "volume": 2.0,
        "technical": 2.0,
        "oscillator": 1.0,
        "momentum": 1.0,
    }
    return {name: _get_env_float(f'weight_{name}', value) for name, value in defaults.items()}


@dataclass
class ConfluenceConfig:
    """Six-factor weighted confluence thresholds."""

    weights: Dict[str, float] = field(default_factory=_default_weights)

    # Minimum number of satisfied factors
    min_confluence: int = field(default_factory=lambda: _get_env_int('min_confluence', 4))

    # Minimum weighted score (weights x 10)
    min_weighted_score: float = field(default_factory=lambda: _get_env_float('min_weighted_score', 50.0))

    volume_multiplier: float = field(default_factory=lambda: _get_env_float('volume_multiplier', 1.2))
    ema_periods: Tuple[int, ...] = (20, 50, 100)

    rsi_oversold: float = field(default_factory=lambda: _get_env_float('rsi_oversold', 30.0))
    rsi_overbought: float = field(default_factory=lambda: _get_env_float('rsi_overbought', 70.0))
    rsi_neutral_low: float = field(default_factory=lambda: _get_env_float('rsi_neutral_low', 40.0))
    rsi_neutral_high: float = field(default_factory=lambda: _get_env_float('rsi_neutral_high', 60.0))

    def validate(self) -> List[str]:
        errors = []
        unknown = set(self.weights) - set(FACTOR_NAMES)
        if unknown:
            errors.append(f"unknown confluence factors: {sorted(unknown)}")
        if any(w < 0 for w in self.weights.values()):
            errors.append("confluence weights cannot be negative")
        if not 0 <= self.min_confluence <= len(FACTOR_NAMES):
            errors.append(f"min_confluence must be between 0 and 6, got {self.min_confluence}")
        if not 0 <= self.min_weighted_score <= 100:
            errors.append(f"min_weighted_score must be between 0 and 100, got {self.min_weighted_score}")
        if self.volume_multiplier <= 0:
            errors.append(f"volume_multiplier must be positive, got {self.volume_multiplier}")
        if list(self.ema_periods) != sorted(self.ema_periods) or len(self.ema_periods) < 2:
            errors.append(f"ema_periods must be at least two ascending periods, got {self.ema_periods}")
        if not self.rsi_oversold < self.rsi_neutral_low < self.rsi_neutral_high < self.rsi_overbought:
            errors.append("rsi levels must satisfy oversold < neutral_low < neutral_high < overbought")
        return errors


@dataclass
class SessionConfig:
    """US equity session boundaries and per-session scan parameters."""

    timezone: str = field(default_factory=lambda: _get_env_str('session_timezone', 'America/New_York'))

    premarket_start: str = field(default_factory=lambda: _get_env_str('premarket_start', '04:00'))
    intraday_start: str = field(default_factory=lambda: _get_env_str('intraday_start', '09:30'))
    afterhours_start: str = field(default_factory=lambda: _get_env_str('afterhours_start', '16:00'))
    afterhours_end: str = field(default_factory=lambda: _get_env_str('afterhours_end', '20:00'))

    # Seconds between scan ticks
    premarket_interval: int = field(default_factory=lambda: _get_env_int('premarket_interval', 120))
    intraday_interval: int = field(default_factory=lambda: _get_env_int('intraday_interval', 60))
    afterhours_interval: int = field(default_factory=lambda: _get_env_int('afterhours_interval', 300))
    closed_interval: int = field(default_factory=lambda: _get_env_int('closed_interval', 600))

    premarket_risk_multiplier: float = field(default_factory=lambda: _get_env_float('premarket_risk_multiplier', 0.7))
    intraday_risk_multiplier: float = field(default_factory=lambda: _get_env_float('intraday_risk_multiplier', 1.0))
    afterhours_risk_multiplier: float = field(default_factory=lambda: _get_env_float('afterhours_risk_multiplier', 0.5))
    closed_risk_multiplier: float = field(default_factory=lambda: _get_env_float('closed_risk_multiplier', 0.3))

    # Outbound indicator calls per minute
    premarket_api_budget: int = field(default_factory=lambda: _get_env_int('premarket_api_budget', 30))
    intraday_api_budget: int = field(default_factory=lambda: _get_env_int('intraday_api_budget', 60))
    afterhours_api_budget: int = field(default_factory=lambda: _get_env_int('afterhours_api_budget', 15))
    closed_api_budget: int = field(default_factory=lambda: _get_env_int('closed_api_budget', 5))

    premarket_confidence: float = field(default_factory=lambda: _get_env_float('premarket_confidence', 0.9))
    intraday_confidence: float = field(default_factory=lambda: _get_env_float('intraday_confidence', 0.95))
    afterhours_confidence: float = field(default_factory=lambda: _get_env_float('afterhours_confidence', 0.7))
    closed_confidence: float = field(default_factory=lambda: _get_env_float('closed_confidence', 0.1))

    def boundaries(self) -> Tuple[time, time, time, time]:
        return (
            parse_clock(self.premarket_start),
            parse_clock(self.intraday_start),
            parse_clock(self.afterhours_start),
            parse_clock(self.afterhours_end),
        )

    def validate(self) -> List[str]:
        errors = []
        try:
            bounds = self.boundaries()
            if list(bounds) != sorted(set(bounds)):
                errors.append(
                    "session boundaries out of order: "
                    f"{self.premarket_start} < {self.intraday_start} < {self.afterhours_start} < {self.afterhours_end}"
                )
        except ValueError:
            errors.append("session boundaries must be HH:MM strings")

        for name in ('premarket', 'intraday', 'afterhours', 'closed'):
            interval = getattr(self, f'{name}_interval')
            if interval <= 0:
                errors.append(f"{name}_interval must be positive, got {interval}")
            budget = getattr(self, f'{name}_api_budget')
            if budget < 1:
                errors.append(f"{name}_api_budget must be at least 1, got {budget}")
            multiplier = getattr(self, f'{name}_risk_multiplier')
            if not 0 <= multiplier <= 1:
                errors.append(f"{name}_risk_multiplier must be between 0 and 1, got {multiplier}")
        return errors


@dataclass
class RiskConfig:
    """Stop, target and sizing parameters."""

    # anchor: stop beyond the pattern anchor, atr: stop at ATR multiple from entry
    stop_policy: str = field(default_factory=lambda: _get_env_str('stop_policy', 'anchor'))
    stop_buffer_pct: float = field(default_factory=lambda: _get_env_float('stop_buffer_pct', 0.005))
    atr_stop_multiplier: float = field(default_factory=lambda: _get_env_float('atr_stop_multiplier', 1.5))

    risk_reward_ratio: float = field(default_factory=lambda: _get_env_float('risk_reward_ratio', 2.0))
    min_risk_reward: float = field(default_factory=lambda: _get_env_float('min_risk_reward', 1.5))
    max_risk_reward: float = field(default_factory=lambda: _get_env_float('max_risk_reward', 2.5))

    # Per-pattern risk-reward overrides keyed by pattern label
    pattern_risk_reward: Dict[str, float] = field(default_factory=dict)

    # Used when the account provider does not supply its own limits
    default_max_risk_per_trade: float = field(default_factory=lambda: _get_env_float('max_risk_per_trade', 0.02))
    default_max_position_size: float = field(default_factory=lambda: _get_env_float('max_position_size', 0.05))

    agreement_bonus: float = field(default_factory=lambda: _get_env_float('agreement_bonus', 0.05))
    agreement_window_bars: int = field(default_factory=lambda: _get_env_int('agreement_window_bars', 3))

    def validate(self) -> List[str]:
        errors = []
        if self.stop_policy not in ('anchor', 'atr'):
            errors.append(f"stop_policy must be 'anchor' or 'atr', got {self.stop_policy}")
        if not 0 < self.stop_buffer_pct < 0.1:
            errors.append(f"stop_buffer_pct should be between 0 and 0.1, got {self.stop_buffer_pct}")
        if self.atr_stop_multiplier <= 0:
            errors.append(f"atr_stop_multiplier must be positive, got {self.atr_stop_multiplier}")
        if not 0 < self.min_risk_reward <= self.max_risk_reward:
            errors.append(f"risk reward range inverted: {self.min_risk_reward} .. {self.max_risk_reward}")
        for label, ratio in [('default', self.risk_reward_ratio)] + list(self.pattern_risk_reward.items()):
            if not self.min_risk_reward <= ratio <= self.max_risk_reward:
                errors.append(
                    f"risk_reward_ratio for {label} must be within "
                    f"{self.min_risk_reward}-{self.max_risk_reward}, got {ratio}"
                )
        if not 0 < self.default_max_risk_per_trade <= 1:
            errors.append(f"max_risk_per_trade must be in (0, 1], got {self.default_max_risk_per_trade}")
        if not 0 < self.default_max_position_size <= 1:
            errors.append(f"max_position_size must be in (0, 1], got {self.default_max_position_size}")
        if not 0 <= self.agreement_bonus <= 1:
            errors.append(f"agreement_bonus must be between 0 and 1, got {self.agreement_bonus}")
        if self.agreement_window_bars < 0:
            errors.append(f"agreement_window_bars cannot be negative, got {self.agreement_window_bars}")
        return errors

    def risk_reward_for(self, pattern_label: str) -> float:
        return self.pattern_risk_reward.get(pattern_label, self.risk_reward_ratio)


@dataclass
class ThrottleConfig:
    """Per-symbol signal rate limits."""

    max_signals_per_day: int = field(default_factory=lambda: _get_env_int('max_signals_per_day', 10))
    cooldown_seconds: float = field(default_factory=lambda: _get_env_float('cooldown_seconds', 300.0))

    # Zone whose local midnight resets the daily count
    timezone: str = field(default_factory=lambda: _get_env_str('throttle_timezone', 'America/New_York'))

    def validate(self) -> List[str]:
        errors = []
        if self.max_signals_per_day < 1:
            errors.append(f"max_signals_per_day must be at least 1, got {self.max_signals_per_day}")
        if self.cooldown_seconds < 0:
            errors.append(f"cooldown_seconds cannot be negative, got {self.cooldown_seconds}")
        return errors


# =============================================================================
# Top-level config
# =============================================================================

@dataclass
class ScannerConfig:
    """
    Centralized scanner configuration.

    Every threshold used by the detectors, scorer, scheduler, risk calculator
    and throttle lives in one of the nested sections. Values can be overridden
    via environment variables with STRATSCAN_ prefix.
    """

    patterns: PatternConfig = field(default_factory=PatternConfig)
    confluence: ConfluenceConfig = field(default_factory=ConfluenceConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)

    # ===== Watchlist & History =====
    watchlist: List[str] = field(default_factory=lambda: _get_env_list('watchlist', []))
    interval: str = field(default_factory=lambda: _get_env_str('interval', '5Min'))

    # Candles kept per (symbol, interval)
    max_history_length: int = field(default_factory=lambda: _get_env_int('max_history_length', 200))

    # Bars handed to the indicator provider
    indicator_lookback: int = field(default_factory=lambda: _get_env_int('indicator_lookback', 100))

    # ===== Delivery =====
    webhook_url: Optional[str] = field(default_factory=lambda: _get_env_str('webhook_url', None))
    http_timeout_seconds: float = field(default_factory=lambda: _get_env_float('http_timeout_seconds', 10.0))

    # Skip scan ticks entirely while the market is closed
    skip_closed_session: bool = field(default_factory=lambda: _get_env_bool('skip_closed_session', True))

    def __post_init__(self):
        """Validate configuration values."""
        self._validate()

    def _validate(self):
        """Validate that all values are within reasonable ranges."""
        errors = []
        for section in (self.patterns, self.confluence, self.session, self.risk, self.throttle):
            errors.extend(section.validate())

        if self.max_history_length < self.patterns.min_history_for_swings:
            errors.append(
                f"max_history_length ({self.max_history_length}) must hold at least "
                f"min_history_for_swings ({self.patterns.min_history_for_swings}) candles"
            )
        if self.indicator_lookback < 1:
            errors.append(f"indicator_lookback must be at least 1, got {self.indicator_lookback}")
        if self.http_timeout_seconds <= 0:
            errors.append(f"http_timeout_seconds must be positive, got {self.http_timeout_seconds}")

        if errors:
            for error in errors:
                logger.error(f"Config validation error: {error}")
            raise ConfigurationError(errors)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        data = asdict(self)
        data['confluence']['ema_periods'] = list(self.confluence.ema_periods)
        return data


# Singleton instance
_config_instance: Optional[ScannerConfig] = None


def load_scanner_config(env_file: Optional[str] = None, override: bool = False) -> ScannerConfig:
    """
    Build a fresh ScannerConfig after loading a .env file.

    Args:
        env_file: Path to the .env file (default: search upwards from cwd)
        override: Whether .env values replace variables already in the environment

    Raises:
        ConfigurationError: If any value is out of range
    """
    load_dotenv(dotenv_path=env_file, override=override)
    return ScannerConfig()


def get_scanner_config() -> ScannerConfig:
    """Get the singleton ScannerConfig instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_scanner_config()
        logger.info(f"Initialized ScannerConfig: {_config_instance.to_dict()}")
    return _config_instance


def reload_scanner_config(env_file: Optional[str] = None) -> ScannerConfig:
    """
    Re-read the environment and replace the singleton.

    The previous instance stays in place if the new values are invalid.
    """
    global _config_instance
    fresh = load_scanner_config(env_file, override=True)
    _config_instance = fresh
    logger.info("Reloaded ScannerConfig")
    return fresh


def reset_scanner_config():
    """Reset config instance (useful for testing)."""
    global _config_instance
    _config_instance = None
