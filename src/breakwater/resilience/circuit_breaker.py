"""Circuit Breaker State Machine.

Sheds load from a failing dependency and cautiously probes its recovery.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Calls rejected immediately with CircuitBreakerOpenError
    HALF_OPEN: A bounded number of concurrent probe calls allowed through

Transitions:
    CLOSED → OPEN          failure_threshold consecutive failures
    OPEN → HALF_OPEN       open_duration_ms elapsed since the last failure
                           (checked lazily on execute and on state queries)
    HALF_OPEN → CLOSED     success_threshold consecutive probe successes
    HALF_OPEN → OPEN       any probe failure

Usage:
    from breakwater.resilience.circuit_breaker import (
        CircuitBreaker,
        CircuitBreakerConfig,
    )

    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3), name="search-api")
    result = await breaker.execute(fetch_results)
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Awaitable, Callable, Optional, TypeVar, Union

import structlog

from breakwater.core.clock import Clock, SystemClock
from breakwater.core.exceptions import CircuitBreakerOpenError

log = structlog.get_logger()

T = TypeVar("T")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Consecutive half-open successes that close it.
        open_duration_ms: Cooldown before the first probe is allowed.
        half_open_max_requests: Concurrent probes allowed while half-open.
    """

    failure_threshold: int = 5
    success_threshold: int = 3
    open_duration_ms: int = 30000
    half_open_max_requests: int = 1

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.open_duration_ms <= 0:
            raise ValueError("open_duration_ms must be > 0")
        if self.half_open_max_requests < 1:
            raise ValueError("half_open_max_requests must be >= 1")

    @classmethod
    def sensitive(cls) -> "CircuitBreakerConfig":
        """Opens quickly, probes again sooner."""
        return cls(failure_threshold=3, success_threshold=2, open_duration_ms=30000)

    @classmethod
    def lenient(cls) -> "CircuitBreakerConfig":
        """Tolerates more failures and waits longer before probing."""
        return cls(failure_threshold=10, success_threshold=3, open_duration_ms=120000)


@dataclass(frozen=True)
class CircuitBreakerMetrics:
    """Read-only snapshot of a circuit breaker."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    half_open_requests: int
    last_failure_time: Optional[int]


# Listener signature: (old_state, new_state), sync or async
StateChangeListener = Callable[[CircuitState, CircuitState], Union[None, Awaitable[None]]]


class CircuitBreaker:
    """Closed/Open/Half-Open circuit breaker for async operations.

    Counters are owned by this instance and mutated only between
    suspension points, so no lock is needed on a single event loop.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        name: str = "default",
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._clock = clock or SystemClock()
        self._listeners: list[StateChangeListener] = []

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_requests = 0
        self._last_failure_time: Optional[int] = None

    @property
    def name(self) -> str:
        """Breaker name, used in logs and rejection errors."""
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        """Breaker configuration (immutable)."""
        return self._config

    @property
    def state(self) -> CircuitState:
        """Current state, after the lazy OPEN → HALF_OPEN check."""
        self._check_open_timeout()
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def half_open_requests(self) -> int:
        """Probes currently in flight."""
        return self._half_open_requests

    def metrics(self) -> CircuitBreakerMetrics:
        """Return a snapshot of state and counters."""
        state = self.state
        return CircuitBreakerMetrics(
            name=self._name,
            state=state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            half_open_requests=self._half_open_requests,
            last_failure_time=self._last_failure_time,
        )

    def add_listener(self, callback: StateChangeListener) -> None:
        """Add a state change listener.

        Args:
            callback: Called with (old_state, new_state) on every transition.
                Can be sync or async function.
        """
        self._listeners.append(callback)

    def remove_listener(self, callback: StateChangeListener) -> None:
        """Remove a state change listener.

        Raises:
            ValueError: If callback is not registered.
        """
        self._listeners.remove(callback)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument coroutine function.

        Returns:
            The operation's result.

        Raises:
            CircuitBreakerOpenError: If the breaker rejects the call.
            Exception: Whatever the operation raises, unchanged.
        """
        self._check_open_timeout()

        if self._state == CircuitState.OPEN:
            log.debug("circuit_breaker_rejected", breaker=self._name, reason="open")
            raise CircuitBreakerOpenError(
                breaker_name=self._name,
                state=str(self._state),
                reason=CircuitBreakerOpenError.REASON_OPEN,
            )

        if self._state == CircuitState.HALF_OPEN:
            return await self._probe(operation)

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    async def _probe(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one half-open probe, bounded by half_open_max_requests."""
        limit = self._config.half_open_max_requests
        if self._half_open_requests >= limit:
            log.debug(
                "circuit_breaker_rejected",
                breaker=self._name,
                reason="half_open_limit",
                in_flight=self._half_open_requests,
            )
            raise CircuitBreakerOpenError(
                breaker_name=self._name,
                state=str(self._state),
                reason=CircuitBreakerOpenError.REASON_HALF_OPEN_LIMIT,
                half_open_max_requests=limit,
            )

        # Slot is taken before yielding to the operation
        self._half_open_requests += 1
        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        finally:
            self._half_open_requests = max(self._half_open_requests - 1, 0)
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state == CircuitState.CLOSED:
            self._failure_count = 0
        elif self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self._config.success_threshold:
                self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = self._clock.now_ms()
        if self._state == CircuitState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self._config.failure_threshold:
                self._last_failure_time = now
                self._transition_to(CircuitState.OPEN)
        elif self._state == CircuitState.HALF_OPEN:
            # Any failure during probing aborts recovery
            self._last_failure_time = now
            self._transition_to(CircuitState.OPEN)

    def _check_open_timeout(self) -> None:
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return
        elapsed = self._clock.now_ms() - self._last_failure_time
        if elapsed >= self._config.open_duration_ms:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._failure_count = 0
        self._success_count = 0
        if new_state == CircuitState.HALF_OPEN:
            self._half_open_requests = 0

        log.info(
            "circuit_breaker_state_changed",
            breaker=self._name,
            from_state=str(old_state),
            to_state=str(new_state),
        )
        self._notify_listeners(old_state, new_state)

    def reset(self) -> None:
        """Return to CLOSED with zeroed counters. Configuration is kept."""
        old_state = self._state
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_requests = 0
        self._last_failure_time = None
        if old_state != CircuitState.CLOSED:
            log.info("circuit_breaker_reset", breaker=self._name, from_state=str(old_state))
            self._notify_listeners(old_state, CircuitState.CLOSED)

    def _notify_listeners(self, old_state: CircuitState, new_state: CircuitState) -> None:
        """Notify listeners. Listener exceptions are logged, never propagated."""
        for listener in self._listeners:
            try:
                if inspect.iscoroutinefunction(listener):
                    try:
                        loop = asyncio.get_running_loop()
                        task = loop.create_task(listener(old_state, new_state))
                        task.add_done_callback(
                            partial(self._handle_async_exception, breaker=self._name)
                        )
                    except RuntimeError:
                        log.warning("async_listener_no_loop", breaker=self._name)
                else:
                    listener(old_state, new_state)
            except Exception as e:
                log.warning("state_listener_error", breaker=self._name, error=str(e))

    @staticmethod
    def _handle_async_exception(task: asyncio.Task, breaker: str) -> None:
        """Callback to log exceptions from async listeners."""
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.warning("state_listener_error", breaker=breaker, error=str(e), async_task=True)

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self._name!r}, state={str(self._state)!r}, "
            f"failure_count={self._failure_count})"
        )
