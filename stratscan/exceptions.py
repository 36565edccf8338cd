"""
StratScan Custom Exception Classes

This module provides a hierarchical exception structure for the signal engine,
enabling callers to catch specific exception types for better error handling.

Exception Hierarchy:
    StratScanError (base)
    |-- ConfigurationError
    |
    |-- DataError
    |
    |-- DegenerateRiskError
    |
    |-- ProviderError
    |   |-- IndicatorProviderError
    |   |-- RateLimitExceededError
    |   +-- CircuitOpenError
    |
    +-- SignalDeliveryError

Only ConfigurationError is fatal: it is raised at startup when thresholds
cannot work together. Everything else is caught at the scanner boundary and
turned into "no signal this tick".

Usage:
    from stratscan.exceptions import IndicatorProviderError

    try:
        snapshot = await provider.get_snapshot(symbol, interval, lookback, candles)
    except IndicatorProviderError as e:
        logger.error(f"Skipping {symbol}: {e}")
"""

from typing import Optional, Any, Dict


class StratScanError(Exception):
    """
    Base exception for all StratScan errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code for logging/diagnostics
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or "STRATSCAN_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logs."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(StratScanError):
    """
    Raised when the scanner configuration is invalid.

    All validation problems are collected before raising so a single
    startup failure reports every bad value.

    Attributes:
        errors: List of individual validation messages
    """

    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__(
            message=f"Invalid scanner configuration: {'; '.join(self.errors)}",
            error_code="CONFIGURATION_ERROR",
            details={"errors": self.errors}
        )


# =============================================================================
# Data Exceptions
# =============================================================================

class DataError(StratScanError):
    """
    Raised when a candle source cannot be read at all (missing columns,
    unparseable timestamps). Individual bad bars are rejected by the
    CandleValidator instead.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.symbol = symbol
        merged = {"symbol": symbol}
        merged.update(details or {})
        super().__init__(
            message=message,
            error_code=error_code or "DATA_ERROR",
            details=merged
        )


# =============================================================================
# Risk Exceptions
# =============================================================================

class DegenerateRiskError(StratScanError):
    """
    Raised when entry and stop produce a zero or negative risk distance.

    Attributes:
        entry_price: Proposed entry
        stop_loss: Computed stop
    """

    def __init__(
        self,
        entry_price: float,
        stop_loss: float,
        symbol: Optional[str] = None
    ):
        self.entry_price = entry_price
        self.stop_loss = stop_loss
        self.symbol = symbol
        super().__init__(
            message=f"Degenerate risk distance (entry {entry_price}, stop {stop_loss})",
            error_code="DEGENERATE_RISK",
            details={
                "symbol": symbol,
                "entry_price": entry_price,
                "stop_loss": stop_loss,
            }
        )


# =============================================================================
# Provider Exceptions
# =============================================================================

class ProviderError(StratScanError):
    """
    Base exception for failures of out-of-process collaborators
    (candle feed, indicator provider, account provider).
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.provider = provider
        merged = {"provider": provider}
        merged.update(details or {})
        super().__init__(
            message=message,
            error_code=error_code or "PROVIDER_ERROR",
            details=merged
        )


class IndicatorProviderError(ProviderError):
    """
    Raised when an indicator snapshot cannot be produced or fails validation.

    Attributes:
        symbol: The symbol being scanned
    """

    def __init__(self, message: str, symbol: Optional[str] = None, provider: Optional[str] = None):
        self.symbol = symbol
        super().__init__(
            message=message,
            provider=provider,
            error_code="INDICATOR_PROVIDER_ERROR",
            details={"symbol": symbol}
        )


class RateLimitExceededError(ProviderError):
    """
    Raised when the shared outbound budget cannot grant a token in time.

    Attributes:
        retry_after: Suggested wait time in seconds before retrying
    """

    def __init__(
        self,
        message: str = "Outbound call budget exhausted.",
        retry_after: float = 1.0
    ):
        self.retry_after = retry_after
        super().__init__(
            message=message,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retry_after_seconds": retry_after}
        )


class CircuitOpenError(ProviderError):
    """
    Raised when a circuit breaker is open and the call is rejected.

    Attributes:
        retry_after: Seconds until a trial call is allowed
    """

    def __init__(self, service: str, retry_after: float):
        self.service = service
        self.retry_after = retry_after
        super().__init__(
            message=f"Circuit breaker OPEN for '{service}', retry after {retry_after:.0f}s",
            provider=service,
            error_code="CIRCUIT_OPEN",
            details={"retry_after_seconds": retry_after}
        )


# =============================================================================
# Delivery Exceptions
# =============================================================================

class SignalDeliveryError(StratScanError):
    """
    Raised by a signal sink when a TradeSignal cannot be handed off.

    The dispatcher logs it and moves on; scanning never waits on delivery.

    Attributes:
        sink: Name of the failing sink
        status_code: HTTP status code for webhook sinks
    """

    def __init__(
        self,
        message: str,
        sink: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.sink = sink
        self.status_code = status_code
        super().__init__(
            message=message,
            error_code="SIGNAL_DELIVERY_ERROR",
            details={
                "sink": sink,
                "status_code": status_code,
            }
        )
