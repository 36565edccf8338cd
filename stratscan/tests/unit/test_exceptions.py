"""
Unit Tests for the Exception Hierarchy
======================================
Run with: pytest stratscan/tests/unit/test_exceptions.py -v
"""
import pytest

from stratscan.exceptions import (
    CircuitOpenError,
    ConfigurationError,
    DataError,
    DegenerateRiskError,
    IndicatorProviderError,
    ProviderError,
    RateLimitExceededError,
    SignalDeliveryError,
    StratScanError,
)


@pytest.mark.unit
class TestHierarchy:

    @pytest.mark.parametrize("exc", [
        ConfigurationError(["bad"]),
        DataError("bad csv"),
        DegenerateRiskError(100.0, 100.0),
        IndicatorProviderError("down"),
        RateLimitExceededError(),
        CircuitOpenError("indicators", 30),
        SignalDeliveryError("rejected"),
    ])
    def test_everything_is_a_stratscan_error(self, exc):
        assert isinstance(exc, StratScanError)

    def test_provider_family(self):
        for exc in (IndicatorProviderError("down"), RateLimitExceededError(), CircuitOpenError("x", 1)):
            assert isinstance(exc, ProviderError)

    def test_catch_by_base(self):
        with pytest.raises(ProviderError):
            raise IndicatorProviderError("down", symbol="AAPL", provider="local")


@pytest.mark.unit
class TestPayloads:

    def test_str_includes_code(self):
        assert str(StratScanError("boom")) == "[STRATSCAN_ERROR] boom"

    def test_configuration_error_joins_messages(self):
        exc = ConfigurationError(["a is wrong", "b is wrong"])
        assert exc.errors == ["a is wrong", "b is wrong"]
        assert "a is wrong; b is wrong" in exc.message
        assert exc.to_dict()["details"]["errors"] == exc.errors

    def test_indicator_provider_error_details(self):
        exc = IndicatorProviderError("down", symbol="AAPL", provider="local")
        data = exc.to_dict()

        assert data["error"] is True
        assert data["error_code"] == "INDICATOR_PROVIDER_ERROR"
        assert data["details"] == {"provider": "local", "symbol": "AAPL"}

    def test_degenerate_risk_error(self):
        exc = DegenerateRiskError(entry_price=100.0, stop_loss=100.5, symbol="AAPL")
        assert exc.details["stop_loss"] == 100.5
        assert "entry 100.0" in exc.message

    def test_circuit_open_error(self):
        exc = CircuitOpenError("indicators", retry_after=42.4)
        assert exc.provider == "indicators"
        assert "retry after 42s" in exc.message

    def test_rate_limit_default_message(self):
        exc = RateLimitExceededError(retry_after=5)
        assert exc.details["retry_after_seconds"] == 5
        assert exc.error_code == "RATE_LIMIT_EXCEEDED"

    def test_data_error_symbol(self):
        exc = DataError("missing columns", symbol="AAPL")
        assert exc.details == {"symbol": "AAPL"}

    def test_delivery_error_status(self):
        exc = SignalDeliveryError("rejected", sink="webhook:x", status_code=500)
        assert exc.details == {"sink": "webhook:x", "status_code": 500}
