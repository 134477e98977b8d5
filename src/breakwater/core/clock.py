"""Injectable time source for the resilience components.

All resilience components read time and sleep through a Clock, never
through ``time`` or ``asyncio.sleep`` directly. Production code uses
SystemClock; tests and dry runs use VirtualClock, which advances
instantly instead of sleeping.

Times are integer milliseconds on a monotonic scale. The absolute value
is meaningless; only differences matter.

Usage:
    from breakwater.core.clock import VirtualClock

    clock = VirtualClock()
    await clock.sleep_ms(250)
    assert clock.now_ms() == 250
    assert clock.sleeps == [250]
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Monotonic millisecond clock with an async sleep."""

    def now_ms(self) -> int:
        """Return the current monotonic time in milliseconds."""
        ...

    async def sleep_ms(self, ms: int) -> None:
        """Suspend the caller for ``ms`` milliseconds."""
        ...


class SystemClock:
    """Clock backed by ``time.monotonic_ns`` and ``asyncio.sleep``."""

    def now_ms(self) -> int:
        return time.monotonic_ns() // 1_000_000

    async def sleep_ms(self, ms: int) -> None:
        # Cancellation propagates out of asyncio.sleep untouched
        await asyncio.sleep(max(ms, 0) / 1000.0)

    def __repr__(self) -> str:
        return "SystemClock()"


class VirtualClock:
    """Deterministic clock for tests and simulations.

    ``sleep_ms`` advances the clock by the requested amount, records it,
    and yields once to the event loop so other tasks can interleave.

    Attributes:
        sleeps: Every sleep duration requested, in call order.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self.sleeps: list[int] = []

    def now_ms(self) -> int:
        return self._now

    def advance(self, ms: int) -> None:
        """Move the clock forward without sleeping.

        Raises:
            ValueError: If ``ms`` is negative.
        """
        if ms < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += ms

    async def sleep_ms(self, ms: int) -> None:
        ms = max(ms, 0)
        self.sleeps.append(ms)
        self._now += ms
        await asyncio.sleep(0)

    @property
    def total_slept_ms(self) -> int:
        """Sum of all recorded sleeps."""
        return sum(self.sleeps)

    def __repr__(self) -> str:
        return f"VirtualClock(now_ms={self._now})"
