"""Unit tests for the injectable clocks."""

import asyncio

import pytest

from breakwater.core.clock import Clock, SystemClock, VirtualClock


class TestVirtualClock:
    def test_starts_at_given_time(self):
        assert VirtualClock().now_ms() == 0
        assert VirtualClock(start_ms=500).now_ms() == 500

    def test_advance(self):
        clock = VirtualClock()
        clock.advance(250)
        assert clock.now_ms() == 250
        assert clock.sleeps == []

    def test_advance_rejects_negative(self):
        with pytest.raises(ValueError):
            VirtualClock().advance(-1)

    @pytest.mark.asyncio
    async def test_sleep_records_and_advances(self):
        clock = VirtualClock()

        await clock.sleep_ms(100)
        await clock.sleep_ms(-5)
        await clock.sleep_ms(200)

        assert clock.sleeps == [100, 0, 200]
        assert clock.now_ms() == 300
        assert clock.total_slept_ms == 300

    @pytest.mark.asyncio
    async def test_sleep_yields_to_other_tasks(self):
        clock = VirtualClock()
        ran = []

        async def other() -> None:
            ran.append(True)

        task = asyncio.create_task(other())
        await clock.sleep_ms(10)

        assert ran == [True]
        await task

    def test_satisfies_protocol(self):
        assert isinstance(VirtualClock(), Clock)
        assert isinstance(SystemClock(), Clock)


class TestSystemClock:
    @pytest.mark.asyncio
    async def test_monotonic(self):
        clock = SystemClock()
        before = clock.now_ms()
        await clock.sleep_ms(1)
        assert clock.now_ms() >= before

    @pytest.mark.asyncio
    async def test_negative_sleep_returns(self):
        await SystemClock().sleep_ms(-100)
