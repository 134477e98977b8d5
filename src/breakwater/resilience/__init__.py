from .retry import (
    RetryConfig,
    RetryContext,
    RetryExecutor,
    RETRY_AFTER_CAP_MS,
    apply_jitter,
    backoff_delay_ms,
    retry_after_ms,
)
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
    CircuitState,
)
from .rate_limiter import RateLimitConfig, RateLimiter, RateLimiterState
from .classify import RETRYABLE_STATUS_CODES, default_is_retryable, default_retry_after
from .orchestrator import PassthroughOrchestrator, ResilienceConfig, ResilienceOrchestrator
from breakwater.core.exceptions import CircuitBreakerOpenError

__all__ = [
    "RetryConfig",
    "RetryContext",
    "RetryExecutor",
    "apply_jitter",
    "backoff_delay_ms",
    "retry_after_ms",
    "RETRY_AFTER_CAP_MS",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerMetrics",
    "CircuitBreakerOpenError",
    "CircuitState",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterState",
    "RETRYABLE_STATUS_CODES",
    "default_is_retryable",
    "default_retry_after",
    "PassthroughOrchestrator",
    "ResilienceConfig",
    "ResilienceOrchestrator",
]
