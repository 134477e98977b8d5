"""Breakwater Exception Hierarchy.

This module defines the structured exception hierarchy for Breakwater.
All custom exceptions inherit from BreakwaterError, enabling consistent
error handling across the codebase.

Exception Categories:
- Errors raised by the wrapped operation → propagated untouched, never wrapped
- Synthetic rejections from the resilience layer → CircuitBreakerOpenError
- Invalid configuration files or values → ConfigurationError

Usage:
    from breakwater.core.exceptions import CircuitBreakerOpenError

    try:
        result = await orchestrator.execute(call_api)
    except CircuitBreakerOpenError as e:
        log.warning("dependency_unhealthy", **e.context)
"""

from typing import Any, Optional


class BreakwaterError(Exception):
    """Base exception for all Breakwater errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: Optional[str] = None) -> None:
        """Initialize BreakwaterError.

        Args:
            message: Optional custom message. Defaults to a generic message.
        """
        self.message = message or "A Breakwater error occurred."
        super().__init__(self.message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context dictionary for structured logging.

        Returns:
            dict: Key-value pairs of exception context.
        """
        return {}

    def __repr__(self) -> str:
        """Return debug representation."""
        return f"{self.__class__.__name__}({self.message!r})"


class CircuitBreakerOpenError(BreakwaterError):
    """Circuit breaker rejected a call without invoking it.

    Raised by the breaker gate only, never by the wrapped operation.
    The dependency is presumed unhealthy (breaker OPEN) or all
    half-open probe slots are in use.

    Attributes:
        breaker_name: Name of the rejecting circuit breaker.
        state: Breaker state at rejection time ("open" or "half_open").
        reason: "open" or "half_open_limit".
        half_open_max_requests: Probe limit, set when reason is "half_open_limit".
    """

    REASON_OPEN = "open"
    REASON_HALF_OPEN_LIMIT = "half_open_limit"

    def __init__(
        self,
        breaker_name: str,
        state: str,
        reason: str = REASON_OPEN,
        half_open_max_requests: Optional[int] = None,
        message: Optional[str] = None,
    ) -> None:
        """Initialize CircuitBreakerOpenError.

        Args:
            breaker_name: Name of the circuit breaker.
            state: Current breaker state.
            reason: Why the call was rejected.
            half_open_max_requests: Probe limit for half-open rejections.
            message: Optional custom message.
        """
        self.breaker_name = breaker_name
        self.state = state
        self.reason = reason
        self.half_open_max_requests = half_open_max_requests

        if message is None:
            if reason == self.REASON_HALF_OPEN_LIMIT:
                message = (
                    f"Circuit breaker '{breaker_name}' is half-open and at its "
                    f"probe limit ({half_open_max_requests} concurrent requests)."
                )
            else:
                message = f"Circuit breaker '{breaker_name}' is open, rejecting request."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for breaker rejection."""
        return {
            "breaker_name": self.breaker_name,
            "state": self.state,
            "reason": self.reason,
            "half_open_max_requests": self.half_open_max_requests,
        }

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"CircuitBreakerOpenError(breaker_name={self.breaker_name!r}, "
            f"state={self.state!r}, reason={self.reason!r})"
        )


class ConfigurationError(BreakwaterError):
    """Settings could not be loaded.

    Covers unreadable or malformed YAML, a top level that is not a mapping,
    and values rejected by validation. The CLI reports it and exits with
    code 1.

    Attributes:
        config_path: File the settings were loaded from.
        key: Offending dotted key, when known.
        expected_type: What the key (or the whole document) should have been.
    """

    def __init__(
        self,
        config_path: str,
        key: Optional[str] = None,
        expected_type: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.config_path = config_path
        self.key = key
        self.expected_type = expected_type

        if message is None:
            parts = [f"Invalid configuration in '{config_path}'"]
            if key:
                parts.append(f"at '{key}'")
            if expected_type:
                parts.append(f"(expected {expected_type})")
            message = " ".join(parts) + "."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for configuration error."""
        return {
            "config_path": self.config_path,
            "key": self.key,
            "expected_type": self.expected_type,
        }

    def __repr__(self) -> str:
        return f"ConfigurationError(config_path={self.config_path!r}, key={self.key!r})"
