"""
Tests for the idle-time maintenance loop.
"""

import asyncio

import pytest

from tiered_memory.maintenance import MaintenanceLoop


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def fill_with_low_importance(manager, count):
    for i in range(count):
        await manager.insert(f"small talk {i}", "working", importance=0.1)


class TestMaintenanceLoop:

    @pytest.mark.asyncio
    async def test_skips_while_user_is_active(self, manager):
        clock = FakeClock()
        loop = MaintenanceLoop(manager, max_idle_sec=300, clock=clock)
        await fill_with_low_importance(manager, 3)
        clock.now += 10

        assert await loop.run_once() is None
        assert manager.working.size() == 3

    @pytest.mark.asyncio
    async def test_skips_when_consolidation_not_needed(self, manager, summarizer):
        clock = FakeClock()
        loop = MaintenanceLoop(manager, max_idle_sec=300, clock=clock)
        await fill_with_low_importance(manager, 3)
        clock.now += 600

        assert await loop.run_once() is None
        assert summarizer.calls == []

    @pytest.mark.asyncio
    async def test_consolidates_when_idle(self, manager):
        clock = FakeClock()
        loop = MaintenanceLoop(manager, max_idle_sec=300, clock=clock)
        for i in range(8):
            await manager.insert(f"important context {i}", "working", importance=0.9)
        # Make three entries qualify after the inserts have already run
        for record in manager.working.entries()[:3]:
            await manager.rescore(record.id, 0.1)
        clock.now += 600

        result = await loop.run_once()

        assert result is not None and result.success
        assert result.data["consolidated_count"] == 3
        assert manager.working.size() == 5

    @pytest.mark.asyncio
    async def test_interaction_resets_idle_timer(self, manager):
        clock = FakeClock()
        loop = MaintenanceLoop(manager, max_idle_sec=300, clock=clock)
        clock.now += 600
        loop.record_interaction()

        assert loop.idle_seconds() == 0
        assert await loop.run_once() is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager):
        loop = MaintenanceLoop(manager, interval_sec=0.01, max_idle_sec=0)

        await loop.start()
        assert loop.running
        await asyncio.sleep(0.05)
        await loop.stop()

        assert not loop.running
