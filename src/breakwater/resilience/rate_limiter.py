"""Dual-budget token bucket rate limiter.

Two independent fixed-window buckets, each refilled in full once a
minute has passed since its last refill:

- request bucket: one token per admitted call (requests_per_minute)
- cost bucket: caller-estimated cost per call (tokens_per_minute),
  for example an LLM token budget

``acquire`` never fails; exhaustion only adds latency. The buckets are
gated one after the other, request bucket first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from breakwater.core.clock import Clock, SystemClock

log = structlog.get_logger()

WINDOW_MS = 60_000


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for the rate limiter.

    Attributes:
        requests_per_minute: Calls admitted per one-minute window.
        tokens_per_minute: Optional cost budget per one-minute window.
    """

    requests_per_minute: int = 60
    tokens_per_minute: Optional[int] = 1_000_000

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if self.tokens_per_minute is not None and self.tokens_per_minute <= 0:
            raise ValueError("tokens_per_minute must be positive")

    @classmethod
    def high_throughput(cls) -> "RateLimitConfig":
        """Large request and cost budgets."""
        return cls(requests_per_minute=1000, tokens_per_minute=10_000_000)

    @classmethod
    def conservative(cls) -> "RateLimitConfig":
        """Small request and cost budgets."""
        return cls(requests_per_minute=30, tokens_per_minute=100_000)


@dataclass(frozen=True)
class RateLimiterState:
    """Read-only snapshot of both buckets."""

    request_tokens: int
    token_budget: Optional[int]
    last_request_refill: int
    last_token_refill: int
    waiting: int


class RateLimiter:
    """Fixed-window rate limiter with a request bucket and a cost bucket.

    Per-instance state only. Mutations between awaits are atomic on a
    single event loop, so no lock is held across the waits.

    The limit is best effort per window under concurrency: every caller
    parked on the same refill is admitted when it lands, which can drive
    the request bucket below zero. The overdraft is not carried into the
    next window.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock or SystemClock()

        now = self._clock.now_ms()
        self._request_tokens = self._config.requests_per_minute
        self._token_budget = self._config.tokens_per_minute
        self._last_request_refill = now
        self._last_token_refill = now
        self._waiting_count = 0

    @property
    def config(self) -> RateLimitConfig:
        """Rate limit configuration (immutable)."""
        return self._config

    def _refill_requests(self) -> None:
        now = self._clock.now_ms()
        if now - self._last_request_refill >= WINDOW_MS:
            self._request_tokens = self._config.requests_per_minute
            self._last_request_refill = now

    def _refill_tokens(self) -> None:
        now = self._clock.now_ms()
        if now - self._last_token_refill >= WINDOW_MS:
            self._token_budget = self._config.tokens_per_minute
            self._last_token_refill = now

    async def acquire(self, estimated_cost: Optional[int] = None) -> None:
        """Wait until the call is admitted by both buckets.

        Args:
            estimated_cost: Optional cost charged to the cost bucket. Ignored
                when no tokens_per_minute budget is configured.

        Raises:
            ValueError: If estimated_cost is negative.
        """
        if estimated_cost is not None and estimated_cost < 0:
            raise ValueError("estimated_cost must be >= 0")

        self._refill_requests()
        if self._request_tokens <= 0:
            wait_ms = WINDOW_MS - (self._clock.now_ms() - self._last_request_refill)
            if wait_ms > 0:
                await self._wait("requests", wait_ms)
            # The wait may have crossed the window boundary
            self._refill_requests()
        self._request_tokens -= 1

        if estimated_cost is None or self._config.tokens_per_minute is None:
            return

        self._refill_tokens()
        if self._token_budget < estimated_cost:
            wait_ms = WINDOW_MS - (self._clock.now_ms() - self._last_token_refill)
            if wait_ms > 0:
                await self._wait("tokens", wait_ms, estimated_cost=estimated_cost)
            self._refill_tokens()
        self._token_budget -= estimated_cost

    async def _wait(self, bucket: str, wait_ms: int, **context: int) -> None:
        log.info("rate_limit_wait", bucket=bucket, wait_ms=wait_ms, **context)
        self._waiting_count += 1
        try:
            await self._clock.sleep_ms(wait_ms)
        finally:
            self._waiting_count -= 1

    def reset(self) -> None:
        """Refill both buckets and restart both windows now."""
        now = self._clock.now_ms()
        self._request_tokens = self._config.requests_per_minute
        self._token_budget = self._config.tokens_per_minute
        self._last_request_refill = now
        self._last_token_refill = now

    def state(self) -> RateLimiterState:
        """Return a snapshot of both buckets after the refill checks."""
        self._refill_requests()
        if self._config.tokens_per_minute is not None:
            self._refill_tokens()
        return RateLimiterState(
            request_tokens=self._request_tokens,
            token_budget=self._token_budget,
            last_request_refill=self._last_request_refill,
            last_token_refill=self._last_token_refill,
            waiting=self._waiting_count,
        )

    @property
    def queue_depth(self) -> int:
        """Return the number of callers waiting for a refill."""
        return self._waiting_count

    @property
    def available_requests(self) -> int:
        """Return requests left in the current window."""
        self._refill_requests()
        return max(self._request_tokens, 0)

    @property
    def requests_per_minute(self) -> int:
        """Return configured RPM."""
        return self._config.requests_per_minute

    async def __aenter__(self) -> "RateLimiter":
        """Async context manager support."""
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        pass

    def __repr__(self) -> str:
        return (
            f"RateLimiter(requests_per_minute={self._config.requests_per_minute}, "
            f"tokens_per_minute={self._config.tokens_per_minute})"
        )
