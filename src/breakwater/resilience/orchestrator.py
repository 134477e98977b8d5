"""Resilience orchestrator.

Every outbound call passes through ``ResilienceOrchestrator.execute``.
The order is fixed:

    rate limiter.acquire → circuit breaker → retry executor → operation

Rate limiting happens even for calls the breaker would reject. Retries
run inside a single breaker call, so a whole retry sequence counts as
one success or one failure toward the breaker thresholds.

Usage:
    from breakwater.resilience import ResilienceConfig, ResilienceOrchestrator

    orchestrator = ResilienceOrchestrator(ResilienceConfig.default(), name="search-api")
    hits = await orchestrator.execute(lambda: client.search(query), estimated_cost=250)
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

import structlog

from breakwater.core.clock import Clock, SystemClock
from breakwater.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from breakwater.resilience.classify import default_is_retryable, default_retry_after
from breakwater.resilience.rate_limiter import RateLimitConfig, RateLimiter
from breakwater.resilience.retry import (
    RetryAfterExtractor,
    RetryConfig,
    RetryExecutor,
    RetryPredicate,
)

if TYPE_CHECKING:
    from breakwater.core.config import ResilienceSettings

log = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class ResilienceConfig:
    """Bundle of component configs.

    ``None`` for the breaker or the rate limiter leaves that component
    out. ``None`` for retry means a single attempt.
    """

    retry: Optional[RetryConfig] = field(default_factory=RetryConfig)
    circuit_breaker: Optional[CircuitBreakerConfig] = field(default_factory=CircuitBreakerConfig)
    rate_limit: Optional[RateLimitConfig] = field(default_factory=RateLimitConfig)

    @classmethod
    def default(cls) -> "ResilienceConfig":
        return cls()

    @classmethod
    def disabled(cls) -> "ResilienceConfig":
        """No breaker, no rate limiting, a single attempt."""
        return cls(retry=RetryConfig.no_retry(), circuit_breaker=None, rate_limit=None)

    @classmethod
    def aggressive(cls) -> "ResilienceConfig":
        return cls(
            retry=RetryConfig.aggressive(),
            circuit_breaker=CircuitBreakerConfig.sensitive(),
            rate_limit=RateLimitConfig.high_throughput(),
        )

    @classmethod
    def conservative(cls) -> "ResilienceConfig":
        return cls(
            retry=RetryConfig(),
            circuit_breaker=CircuitBreakerConfig.lenient(),
            rate_limit=RateLimitConfig.conservative(),
        )

    @classmethod
    def preset(cls, name: str) -> "ResilienceConfig":
        """Look up a preset by name.

        Raises:
            ValueError: If the preset name is unknown.
        """
        presets: dict[str, Callable[[], ResilienceConfig]] = {
            "default": cls.default,
            "disabled": cls.disabled,
            "aggressive": cls.aggressive,
            "conservative": cls.conservative,
        }
        try:
            return presets[name]()
        except KeyError:
            raise ValueError(
                f"Unknown resilience preset: {name}. Must be one of {sorted(presets)}"
            ) from None


class ResilienceOrchestrator:
    """Composes rate limiting, circuit breaking and retry around a call.

    One instance per client or per logical dependency. Components are
    built from the config once and live until ``reset`` or process exit.
    """

    def __init__(
        self,
        config: Optional[ResilienceConfig] = None,
        is_retryable: RetryPredicate = default_is_retryable,
        get_retry_after: Optional[RetryAfterExtractor] = default_retry_after,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        name: str = "default",
    ) -> None:
        self._config = config or ResilienceConfig()
        self._name = name
        self._is_retryable = is_retryable
        self._get_retry_after = get_retry_after
        clock = clock or SystemClock()

        self._retry_executor = RetryExecutor(
            self._config.retry or RetryConfig.no_retry(), clock=clock, rng=rng
        )
        self._circuit_breaker: Optional[CircuitBreaker] = None
        if self._config.circuit_breaker is not None:
            self._circuit_breaker = CircuitBreaker(
                self._config.circuit_breaker, name=name, clock=clock
            )
        self._rate_limiter: Optional[RateLimiter] = None
        if self._config.rate_limit is not None:
            self._rate_limiter = RateLimiter(self._config.rate_limit, clock=clock)

        log.info(
            "orchestrator_initialized",
            name=name,
            retry=self._config.retry is not None,
            circuit_breaker=self._circuit_breaker is not None,
            rate_limiter=self._rate_limiter is not None,
        )

    @classmethod
    def from_settings(
        cls, settings: "ResilienceSettings", **kwargs: Any
    ) -> "ResilienceOrchestrator":
        """Build an orchestrator from loaded settings.

        Args:
            settings: Loaded ResilienceSettings.
            **kwargs: Passed through to the constructor (predicates, clock, name).
        """
        return cls(settings.to_resilience_config(), **kwargs)

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> ResilienceConfig:
        return self._config

    @property
    def circuit_breaker(self) -> Optional[CircuitBreaker]:
        """The breaker, or None when not configured."""
        return self._circuit_breaker

    @property
    def rate_limiter(self) -> Optional[RateLimiter]:
        """The rate limiter, or None when not configured."""
        return self._rate_limiter

    @property
    def retry_executor(self) -> RetryExecutor:
        return self._retry_executor

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        estimated_cost: Optional[int] = None,
    ) -> T:
        """Run ``operation`` with full resilience protection.

        Args:
            operation: Zero-argument coroutine function.
            estimated_cost: Optional cost charged to the limiter's cost bucket.

        Returns:
            The operation's result.

        Raises:
            CircuitBreakerOpenError: If the breaker rejects the call.
            Exception: The operation's own error, never reclassified.
        """
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire(estimated_cost)

        async def with_retry() -> T:
            return await self._retry_executor.execute(
                operation, self._is_retryable, self._get_retry_after
            )

        if self._circuit_breaker is not None:
            return await self._circuit_breaker.execute(with_retry)
        return await with_retry()

    async def execute_once(
        self,
        operation: Callable[[], Awaitable[T]],
        estimated_cost: Optional[int] = None,
    ) -> T:
        """Like ``execute`` but without retries.

        For callers that handle retries themselves but still want rate
        limiting and the breaker.
        """
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire(estimated_cost)

        if self._circuit_breaker is not None:
            return await self._circuit_breaker.execute(operation)
        return await operation()

    def reset(self) -> None:
        """Reset breaker and limiter. The retry executor holds no state."""
        if self._circuit_breaker is not None:
            self._circuit_breaker.reset()
        if self._rate_limiter is not None:
            self._rate_limiter.reset()
        log.info("orchestrator_reset", name=self._name)

    def __repr__(self) -> str:
        return f"ResilienceOrchestrator(name={self._name!r}, config={self._config!r})"


class PassthroughOrchestrator:
    """Orchestrator with the same surface and no protection at all.

    Useful for tests and for clients that opt out of resilience.
    """

    circuit_breaker: Optional[CircuitBreaker] = None
    rate_limiter: Optional[RateLimiter] = None
    retry_executor: Optional[RetryExecutor] = None

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        estimated_cost: Optional[int] = None,
    ) -> T:
        return await operation()

    async def execute_once(
        self,
        operation: Callable[[], Awaitable[T]],
        estimated_cost: Optional[int] = None,
    ) -> T:
        return await operation()

    def reset(self) -> None:
        pass

    def __repr__(self) -> str:
        return "PassthroughOrchestrator()"
