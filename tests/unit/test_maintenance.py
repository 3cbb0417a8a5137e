"""
Maintenance Scheduler Unit Tests

- Jobs run only once their interval has elapsed
- Sync and async sweep functions
- Failing sweeps are counted and do not stop other jobs
- Background loop start/stop
"""

import asyncio
import time

import pytest

from config.settings import CacheSettings, PatternSettings
from core.exceptions import CacheError
from orchestration.maintenance import MaintenanceScheduler


@pytest.mark.unit
@pytest.mark.asyncio
async def test_jobs_run_only_when_due():
    scheduler = MaintenanceScheduler()
    scheduler.add_job("sync", 60, lambda: 3)
    start = time.monotonic()

    assert await scheduler.run_due(now=start) == {}
    assert await scheduler.run_due(now=start + 61) == {"sync": 3}
    assert await scheduler.run_due(now=start + 62) == {}

    status = scheduler.get_status()["sync"]
    assert status["runs"] == 1
    assert status["removed"] == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_async_jobs_are_awaited():
    async def sweep():
        return 2

    scheduler = MaintenanceScheduler()
    scheduler.add_job("async", 10, sweep)

    assert await scheduler.run_due(now=time.monotonic() + 11) == {"async": 2}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_job_is_counted_and_others_still_run():
    def broken():
        raise CacheError("tier unavailable")

    scheduler = MaintenanceScheduler()
    scheduler.add_job("broken", 10, broken)
    scheduler.add_job("healthy", 10, lambda: 1)

    results = await scheduler.run_due(now=time.monotonic() + 11)

    assert results == {"broken": 0, "healthy": 1}
    assert scheduler.get_status()["broken"]["failures"] == 1


@pytest.mark.unit
def test_for_broker_registers_three_sweeps(cache, engine):
    scheduler = MaintenanceScheduler.for_broker(
        cache,
        engine,
        CacheSettings(sweep_interval_seconds=300),
        PatternSettings(),
    )

    status = scheduler.get_status()
    assert set(status) == {"cache_expiry", "embedding_memo", "pattern_cache"}
    assert status["cache_expiry"]["interval_seconds"] == 300


@pytest.mark.unit
@pytest.mark.asyncio
async def test_background_loop_runs_and_stops():
    calls = []
    scheduler = MaintenanceScheduler(tick_seconds=0.01)
    scheduler.add_job("tick", 0, lambda: calls.append(1) or 0)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert not scheduler.running
    assert calls
