"""
Configuration module for the StratScan signal engine.

Centralizes all configurable values with environment variable overrides.
"""

from .scanner_config import (
    ScannerConfig,
    PatternConfig,
    ConfluenceConfig,
    SessionConfig,
    RiskConfig,
    ThrottleConfig,
    get_scanner_config,
    load_scanner_config,
    reload_scanner_config,
    reset_scanner_config,
)

__all__ = [
    'ScannerConfig',
    'PatternConfig',
    'ConfluenceConfig',
    'SessionConfig',
    'RiskConfig',
    'ThrottleConfig',
    'get_scanner_config',
    'load_scanner_config',
    'reload_scanner_config',
    'reset_scanner_config',
]
