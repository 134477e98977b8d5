"""Unit tests for ResilienceOrchestrator composition."""

import math
from unittest.mock import AsyncMock

import pytest

from breakwater.core.config import ResilienceSettings
from breakwater.core.exceptions import CircuitBreakerOpenError
from breakwater.resilience.circuit_breaker import CircuitBreakerConfig, CircuitState
from breakwater.resilience.orchestrator import (
    PassthroughOrchestrator,
    ResilienceConfig,
    ResilienceOrchestrator,
)
from breakwater.resilience.rate_limiter import WINDOW_MS, RateLimitConfig
from breakwater.resilience.retry import RetryConfig


def fast_retry(max_attempts: int = 3) -> RetryConfig:
    return RetryConfig(
        max_attempts=max_attempts,
        initial_delay_ms=100,
        max_delay_ms=1000,
        multiplier=2.0,
        jitter=0.0,
    )


class TestResilienceConfig:
    def test_default_has_all_components(self):
        config = ResilienceConfig.default()
        assert config.retry == RetryConfig()
        assert config.circuit_breaker == CircuitBreakerConfig()
        assert config.rate_limit == RateLimitConfig()

    def test_disabled(self):
        config = ResilienceConfig.disabled()
        assert config.retry.max_attempts == 1
        assert config.circuit_breaker is None
        assert config.rate_limit is None

    @pytest.mark.parametrize("name", ["default", "disabled", "aggressive", "conservative"])
    def test_preset_lookup(self, name):
        assert ResilienceConfig.preset(name) == getattr(ResilienceConfig, name)()

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown resilience preset: turbo"):
            ResilienceConfig.preset("turbo")


class TestOrchestratorExecute:
    @pytest.mark.asyncio
    async def test_returns_operation_result(self, clock):
        orchestrator = ResilienceOrchestrator(clock=clock)

        result = await orchestrator.execute(AsyncMock(return_value={"id": 1}))

        assert result == {"id": 1}

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, clock, transient_error):
        """Default classification retries errors flagged is_retryable."""
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=fast_retry()), clock=clock)
        operation = AsyncMock(side_effect=[transient_error(), transient_error(), "ok"])

        assert await orchestrator.execute(operation) == "ok"

        assert operation.await_count == 3
        assert clock.sleeps == [100, 200]

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, clock, permanent_error):
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=fast_retry()), clock=clock)
        operation = AsyncMock(side_effect=permanent_error())

        with pytest.raises(permanent_error):
            await orchestrator.execute(operation)

        assert operation.await_count == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_retry_after_from_error_attribute(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=fast_retry()), clock=clock)
        operation = AsyncMock(side_effect=[transient_error(retry_after=2), "ok"])

        await orchestrator.execute(operation)

        assert clock.sleeps == [2000]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hint", [math.nan, math.inf])
    async def test_non_finite_retry_after_surfaces_operation_error(
        self, clock, transient_error, hint
    ):
        """A 503 with a NaN or infinite hint still fails with the 503 itself."""
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=fast_retry()), clock=clock)
        error = transient_error("503 Service Unavailable", retry_after=hint)

        with pytest.raises(transient_error) as exc_info:
            await orchestrator.execute(AsyncMock(side_effect=error))

        assert exc_info.value is error
        assert clock.sleeps == [100, 200]

    @pytest.mark.asyncio
    async def test_negative_cost_rejected_before_invocation(self, clock):
        orchestrator = ResilienceOrchestrator(clock=clock)
        operation = AsyncMock(return_value="ok")

        with pytest.raises(ValueError, match="estimated_cost must be >= 0"):
            await orchestrator.execute(operation, estimated_cost=-5)

        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_predicate(self, clock):
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(retry=fast_retry()),
            is_retryable=lambda e: isinstance(e, KeyError),
            clock=clock,
        )
        operation = AsyncMock(side_effect=[KeyError("missing"), "ok"])

        assert await orchestrator.execute(operation) == "ok"

    @pytest.mark.asyncio
    async def test_retry_sequence_counts_once_toward_breaker(self, clock, transient_error):
        """A whole failed retry sequence is a single breaker failure."""
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=fast_retry(max_attempts=3),
                circuit_breaker=CircuitBreakerConfig(failure_threshold=2),
            ),
            clock=clock,
        )
        operation = AsyncMock(side_effect=transient_error())

        with pytest.raises(transient_error):
            await orchestrator.execute(operation)

        assert operation.await_count == 3
        assert orchestrator.circuit_breaker.failure_count == 1
        assert orchestrator.circuit_breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_retrying(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=fast_retry(max_attempts=2),
                circuit_breaker=CircuitBreakerConfig(failure_threshold=2),
            ),
            clock=clock,
            name="billing-api",
        )
        failing = AsyncMock(side_effect=transient_error())
        for _ in range(2):
            with pytest.raises(transient_error):
                await orchestrator.execute(failing)
        sleeps_before = list(clock.sleeps)

        operation = AsyncMock(return_value="ok")
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await orchestrator.execute(operation)

        operation.assert_not_awaited()
        assert exc_info.value.breaker_name == "billing-api"
        assert clock.sleeps == sleeps_before

    @pytest.mark.asyncio
    async def test_rate_limit_applies_to_rejected_calls(self, clock, transient_error):
        """A call rejected by the breaker still consumes a request token."""
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=RetryConfig.no_retry(),
                circuit_breaker=CircuitBreakerConfig(failure_threshold=1),
                rate_limit=RateLimitConfig(requests_per_minute=2),
            ),
            clock=clock,
        )
        with pytest.raises(transient_error):
            await orchestrator.execute(AsyncMock(side_effect=transient_error()))

        with pytest.raises(CircuitBreakerOpenError):
            await orchestrator.execute(AsyncMock())

        assert orchestrator.rate_limiter.available_requests == 0

    @pytest.mark.asyncio
    async def test_limiter_wait_precedes_invocation(self, clock):
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(rate_limit=RateLimitConfig(requests_per_minute=1)),
            clock=clock,
        )
        invoked_at = []

        async def operation() -> str:
            invoked_at.append(clock.now_ms())
            return "ok"

        await orchestrator.execute(operation)
        await orchestrator.execute(operation)

        assert invoked_at == [0, WINDOW_MS]

    @pytest.mark.asyncio
    async def test_estimated_cost_charged_once_per_call(self, clock, transient_error):
        """Retries inside one call do not charge the cost bucket again."""
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=fast_retry(),
                rate_limit=RateLimitConfig(tokens_per_minute=1000),
            ),
            clock=clock,
        )
        operation = AsyncMock(side_effect=[transient_error(), "ok"])

        await orchestrator.execute(operation, estimated_cost=300)

        assert orchestrator.rate_limiter.state().token_budget == 700

    @pytest.mark.asyncio
    async def test_breaker_recovers_through_orchestrator(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=RetryConfig.no_retry(),
                circuit_breaker=CircuitBreakerConfig(
                    failure_threshold=1, success_threshold=1, open_duration_ms=5000
                ),
                rate_limit=None,
            ),
            clock=clock,
        )
        with pytest.raises(transient_error):
            await orchestrator.execute(AsyncMock(side_effect=transient_error()))

        clock.advance(5000)

        assert await orchestrator.execute(AsyncMock(return_value="ok")) == "ok"
        assert orchestrator.circuit_breaker.state == CircuitState.CLOSED


class TestOrchestratorVariants:
    @pytest.mark.asyncio
    async def test_execute_once_skips_retry(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=fast_retry()), clock=clock)
        operation = AsyncMock(side_effect=transient_error())

        with pytest.raises(transient_error):
            await orchestrator.execute_once(operation)

        assert operation.await_count == 1
        assert clock.sleeps == []
        assert orchestrator.circuit_breaker.failure_count == 1
        assert orchestrator.rate_limiter.available_requests == 59

    @pytest.mark.asyncio
    async def test_disabled_components(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(ResilienceConfig.disabled(), clock=clock)
        operation = AsyncMock(side_effect=transient_error())

        assert orchestrator.circuit_breaker is None
        assert orchestrator.rate_limiter is None
        with pytest.raises(transient_error):
            await orchestrator.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_retry_config_means_single_attempt(self, clock):
        orchestrator = ResilienceOrchestrator(ResilienceConfig(retry=None), clock=clock)

        assert orchestrator.retry_executor.config.max_attempts == 1

    @pytest.mark.asyncio
    async def test_reset_restores_components(self, clock, transient_error):
        orchestrator = ResilienceOrchestrator(
            ResilienceConfig(
                retry=RetryConfig.no_retry(),
                circuit_breaker=CircuitBreakerConfig(failure_threshold=1),
                rate_limit=RateLimitConfig(requests_per_minute=5),
            ),
            clock=clock,
        )
        with pytest.raises(transient_error):
            await orchestrator.execute(AsyncMock(side_effect=transient_error()))

        orchestrator.reset()
        orchestrator.reset()

        assert orchestrator.circuit_breaker.state == CircuitState.CLOSED
        assert orchestrator.rate_limiter.available_requests == 5

    def test_from_settings(self, clock):
        settings = ResilienceSettings(
            enable_circuit_breaker=False,
            retry={"max_attempts": 7},
            rate_limit={"requests_per_minute": 10},
        )

        orchestrator = ResilienceOrchestrator.from_settings(settings, clock=clock, name="search")

        assert orchestrator.name == "search"
        assert orchestrator.circuit_breaker is None
        assert orchestrator.retry_executor.config.max_attempts == 7
        assert orchestrator.rate_limiter.requests_per_minute == 10

    @pytest.mark.asyncio
    async def test_passthrough(self, transient_error):
        orchestrator = PassthroughOrchestrator()
        operation = AsyncMock(side_effect=[transient_error(), "ok"])

        with pytest.raises(transient_error):
            await orchestrator.execute(operation, estimated_cost=10)
        assert await orchestrator.execute_once(operation) == "ok"

        assert orchestrator.circuit_breaker is None
        assert orchestrator.rate_limiter is None
        orchestrator.reset()
