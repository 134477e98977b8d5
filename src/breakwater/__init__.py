"""
Breakwater - resilience layer for outbound API clients

Rate limiting, circuit breaking and retry with backoff, composed behind a
single orchestrator that every outbound call passes through.
"""

from breakwater.core.exceptions import (
    BreakwaterError,
    CircuitBreakerOpenError,
    ConfigurationError,
)
from breakwater.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    PassthroughOrchestrator,
    RateLimitConfig,
    RateLimiter,
    ResilienceConfig,
    ResilienceOrchestrator,
    RetryConfig,
    RetryExecutor,
)

__version__ = "0.1.0"

__all__ = [
    "BreakwaterError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "PassthroughOrchestrator",
    "RateLimitConfig",
    "RateLimiter",
    "ResilienceConfig",
    "ResilienceOrchestrator",
    "RetryConfig",
    "RetryExecutor",
]
