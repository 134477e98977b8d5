"""Retry with exponential backoff and jitter.

The executor runs an operation and retries transient failures. Which
failures are transient is decided by a caller-supplied predicate; a
server-supplied retry-after hint replaces the computed backoff for a
single wait without resetting the backoff curve.

All delays are integer milliseconds.
"""

from __future__ import annotations

import inspect
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar, Union

import structlog

from breakwater.core.clock import Clock, SystemClock

log = structlog.get_logger()

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
RetryPredicate = Callable[[BaseException], bool]
RetryAfterExtractor = Callable[[BaseException], Optional[float]]

# Longest wait a server hint can impose
RETRY_AFTER_CAP_MS = 60_000


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total invocations allowed, including the first one.
        initial_delay_ms: Backoff before the first retry.
        max_delay_ms: Upper bound for the exponential backoff.
        multiplier: Growth factor applied after every wait.
        jitter: Fraction of the wait randomly added or removed, in [0, 1].
    """

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 60000
    multiplier: float = 2.0
    jitter: float = 0.25

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms <= 0:
            raise ValueError("initial_delay_ms must be > 0")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        if self.multiplier <= 1:
            raise ValueError("multiplier must be > 1")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        """Single attempt, failures surface immediately."""
        return cls(max_attempts=1)

    @classmethod
    def aggressive(cls) -> "RetryConfig":
        """More attempts with a shorter, tighter backoff curve."""
        return cls(max_attempts=5, initial_delay_ms=500, max_delay_ms=30000)


@dataclass(frozen=True)
class RetryContext:
    """Snapshot handed to retry hooks before each backoff wait."""

    attempt: int
    max_attempts: int
    error: BaseException
    delay_ms: int
    used_retry_after: bool


RetryHook = Callable[[RetryContext], Union[None, Awaitable[None]]]


def backoff_delay_ms(config: RetryConfig, retry_number: int) -> int:
    """Return the pre-jitter delay before the nth retry (1-based).

    Mirrors the executor's arithmetic exactly, including rounding.
    """
    if retry_number < 1:
        raise ValueError("retry_number must be >= 1")
    delay = config.initial_delay_ms
    for _ in range(retry_number - 1):
        delay = min(round(delay * config.multiplier), config.max_delay_ms)
    return delay


def apply_jitter(base_ms: int, jitter: float, rng: random.Random) -> int:
    """Perturb ``base_ms`` by up to ``jitter`` of itself in either direction.

    The result is an integer inside ``[base_ms * (1 - jitter), base_ms * (1 + jitter)]``.
    """
    if jitter == 0 or base_ms <= 0:
        return max(base_ms, 0)
    offset = rng.uniform(-1.0, 1.0) * base_ms * jitter
    lower = min(math.ceil(base_ms * (1 - jitter)), base_ms)
    upper = max(math.floor(base_ms * (1 + jitter)), base_ms)
    return max(min(max(round(base_ms + offset), lower), upper), 0)


def retry_after_ms(hint: Optional[float]) -> Optional[int]:
    """Convert a retry-after hint in seconds to a wait in milliseconds.

    Returns None for hints that cannot be used (missing, non-numeric, NaN or
    infinite). Negative hints become 0; long hints are capped at
    ``RETRY_AFTER_CAP_MS``.
    """
    if isinstance(hint, bool) or not isinstance(hint, (int, float)):
        return None
    if not math.isfinite(hint):
        return None
    return min(max(round(hint * 1000), 0), RETRY_AFTER_CAP_MS)


class RetryExecutor:
    """Runs operations with retry and exponential backoff.

    Holds configuration and hooks only; every ``execute`` call keeps its
    own attempt counter and delay, so one executor can serve concurrent
    callers.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()
        self._hooks: list[RetryHook] = []

    @property
    def config(self) -> RetryConfig:
        """Retry configuration (immutable)."""
        return self._config

    def add_hook(self, hook: RetryHook) -> "RetryExecutor":
        """Register a sync or async callable run before every backoff wait."""
        self._hooks.append(hook)
        return self

    def remove_hook(self, hook: RetryHook) -> None:
        """Remove a previously registered hook.

        Raises:
            ValueError: If hook is not registered.
        """
        self._hooks.remove(hook)

    async def execute(
        self,
        operation: Operation[T],
        is_retryable: RetryPredicate,
        get_retry_after: Optional[RetryAfterExtractor] = None,
    ) -> T:
        """Run ``operation``, retrying transient failures.

        Args:
            operation: Zero-argument coroutine function.
            is_retryable: Returns True when a failure is transient.
            get_retry_after: Optional extractor of a server delay hint, in seconds.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error raised by the operation, once it is
                non-retryable or attempts are exhausted.
        """
        config = self._config
        attempts = 0
        delay_ms = config.initial_delay_ms

        while True:
            try:
                return await operation()
            except Exception as e:
                attempts += 1

                if not is_retryable(e):
                    log.debug(
                        "retry_not_retryable",
                        attempt=attempts,
                        error_class=type(e).__name__,
                    )
                    raise

                if attempts >= config.max_attempts:
                    log.warning(
                        "retry_exhausted",
                        attempts=attempts,
                        error_class=type(e).__name__,
                        error=str(e),
                    )
                    raise

                hint_ms = retry_after_ms(get_retry_after(e)) if get_retry_after else None
                base_ms = hint_ms if hint_ms is not None else delay_ms
                wait_ms = apply_jitter(base_ms, config.jitter, self._rng)

                await self._run_hooks(
                    RetryContext(
                        attempt=attempts,
                        max_attempts=config.max_attempts,
                        error=e,
                        delay_ms=wait_ms,
                        used_retry_after=hint_ms is not None,
                    )
                )

                log.info(
                    "retry_scheduled",
                    attempt=attempts,
                    max_attempts=config.max_attempts,
                    delay_ms=wait_ms,
                    retry_after_ms=hint_ms,
                    error_class=type(e).__name__,
                )

            await self._clock.sleep_ms(wait_ms)

            # Advance the curve even when retry-after set this wait
            delay_ms = min(round(delay_ms * config.multiplier), config.max_delay_ms)

    async def _run_hooks(self, context: RetryContext) -> None:
        """Run hooks in registration order. Hook failures are logged only."""
        for hook in self._hooks:
            try:
                result = hook(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.warning("retry_hook_error", attempt=context.attempt, error=str(e))

    def __repr__(self) -> str:
        return f"RetryExecutor(config={self._config!r})"
