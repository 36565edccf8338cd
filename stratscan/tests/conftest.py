"""
StratScan Test Configuration
============================
Shared pytest fixtures and configuration for all tests.

This file is automatically loaded by pytest and provides:
- Custom markers (unit, integration, slow)
- Environment isolation for STRATSCAN_ overrides
- Config, engine, session and account fixtures
- Candle window fixtures
"""
import pytest
from typing import List

from stratscan.config.scanner_config import ENV_PREFIX, ScannerConfig, reset_scanner_config
from stratscan.models.market import AccountContext
from stratscan.services.candle_validator import Candle
from stratscan.services.session_scheduler import SessionInfo, SessionScheduler
from stratscan.services.signal_engine import SignalEngine
from stratscan.tests.mocks.fixtures import (
    abcd_bullish_candles,
    candles_from_bars,
    eastern,
    strat_reversal_bars,
)


# ============================================================
# Pytest Configuration
# ============================================================

def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop any STRATSCAN_ variables from the developer's shell and reset the config singleton."""
    import os
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    reset_scanner_config()
    yield
    reset_scanner_config()


# ============================================================
# Config & Engine Fixtures
# ============================================================

@pytest.fixture
def config() -> ScannerConfig:
    """Default configuration with a one-symbol watchlist."""
    return ScannerConfig(watchlist=["TEST"])


@pytest.fixture
def engine(config: ScannerConfig) -> SignalEngine:
    return SignalEngine(config)


@pytest.fixture
def scheduler(config: ScannerConfig) -> SessionScheduler:
    return SessionScheduler(config.session)


@pytest.fixture
def intraday_session(scheduler: SessionScheduler) -> SessionInfo:
    return scheduler.classify(eastern(2026, 3, 2, 10, 0))


@pytest.fixture
def premarket_session(scheduler: SessionScheduler) -> SessionInfo:
    return scheduler.classify(eastern(2026, 3, 2, 7, 0))


@pytest.fixture
def afterhours_session(scheduler: SessionScheduler) -> SessionInfo:
    return scheduler.classify(eastern(2026, 3, 2, 17, 0))


@pytest.fixture
def closed_session(scheduler: SessionScheduler) -> SessionInfo:
    return scheduler.classify(eastern(2026, 3, 2, 21, 0))


@pytest.fixture
def account() -> AccountContext:
    return AccountContext(equity=100000.0, max_risk_per_trade=0.02, max_position_size=0.05)


# ============================================================
# Candle Fixtures
# ============================================================

@pytest.fixture
def reversal_candles() -> List[Candle]:
    """Five candles ending in a bullish 2D -> 2U reversal."""
    return candles_from_bars(strat_reversal_bars())


@pytest.fixture
def abcd_candles() -> List[Candle]:
    """51 candles tracing a bullish ABCD."""
    return abcd_bullish_candles()
