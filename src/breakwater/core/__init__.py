"""Core module for Breakwater.

Exports the exception hierarchy and the clock abstraction. Configuration
lives in ``breakwater.core.config`` and is imported explicitly, since it
depends on the resilience components.
"""

from breakwater.core.exceptions import (
    BreakwaterError,
    CircuitBreakerOpenError,
    ConfigurationError,
)
from breakwater.core.clock import (
    Clock,
    SystemClock,
    VirtualClock,
)

__all__ = [
    "BreakwaterError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "Clock",
    "SystemClock",
    "VirtualClock",
]
