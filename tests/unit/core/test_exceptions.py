"""Unit tests for breakwater.core.exceptions module.

Tests the exception hierarchy:
- BreakwaterError (base)
- CircuitBreakerOpenError
- ConfigurationError
"""

import pytest

from breakwater.core.exceptions import (
    BreakwaterError,
    CircuitBreakerOpenError,
    ConfigurationError,
)


class TestBreakwaterError:
    """Tests for the base BreakwaterError exception."""

    def test_inherits_from_exception(self):
        assert issubclass(BreakwaterError, Exception)

    def test_has_meaningful_default_message(self):
        error = BreakwaterError()
        assert "error" in str(error).lower()

    def test_accepts_custom_message(self):
        error = BreakwaterError("Custom message")
        assert str(error) == "Custom message"
        assert error.context == {}
        assert repr(error) == "BreakwaterError('Custom message')"


class TestCircuitBreakerOpenError:
    """Tests for CircuitBreakerOpenError."""

    def test_inherits_from_breakwater_error(self):
        assert issubclass(CircuitBreakerOpenError, BreakwaterError)

    def test_open_rejection(self):
        error = CircuitBreakerOpenError(breaker_name="search-api", state="open")

        assert error.reason == CircuitBreakerOpenError.REASON_OPEN
        assert "search-api" in str(error)
        assert "open" in str(error)
        assert error.half_open_max_requests is None

    def test_half_open_limit_rejection(self):
        error = CircuitBreakerOpenError(
            breaker_name="search-api",
            state="half_open",
            reason=CircuitBreakerOpenError.REASON_HALF_OPEN_LIMIT,
            half_open_max_requests=2,
        )

        assert "half-open" in str(error)
        assert "2 concurrent" in str(error)

    def test_context_for_structured_logging(self):
        error = CircuitBreakerOpenError(breaker_name="a", state="open")
        assert error.context == {
            "breaker_name": "a",
            "state": "open",
            "reason": "open",
            "half_open_max_requests": None,
        }
        assert "breaker_name='a'" in repr(error)

    def test_caught_as_base(self):
        with pytest.raises(BreakwaterError):
            raise CircuitBreakerOpenError(breaker_name="a", state="open")


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_default_message_includes_key_and_type(self):
        error = ConfigurationError(
            config_path="/etc/breakwater.yaml", key="retry.jitter", expected_type="float"
        )

        assert "/etc/breakwater.yaml" in str(error)
        assert "retry.jitter" in str(error)
        assert "expected float" in str(error)

    def test_custom_message(self):
        error = ConfigurationError(config_path="x.yaml", message="broken")

        assert str(error) == "broken"
        assert error.context == {"config_path": "x.yaml", "key": None, "expected_type": None}
        assert "config_path='x.yaml'" in repr(error)
