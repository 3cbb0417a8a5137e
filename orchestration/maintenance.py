"""
Maintenance Scheduler

Periodic sweeps of the in-memory caches:

- response cache expiry (every 5 minutes by default)
- embedding memo (every 30 minutes)
- cached pattern lists (every 15 minutes)

All sweeps run from one asyncio task in sequence, so a sweep never overlaps
another run of itself or of any other sweep.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from config.settings import CacheSettings, PatternSettings
from core.exceptions import ContentBrokerException
from intelligence.pattern_learning import PatternLearningEngine
from optimization.cache_manager import MultiLayerCache

SweepFn = Callable[[], Union[int, Awaitable[int]]]


@dataclass
class SweepJob:
    name: str
    interval_seconds: float
    run: SweepFn
    next_due: float = 0.0
    runs: int = 0
    removed: int = 0
    failures: int = 0


class MaintenanceScheduler:
    """Runs registered sweep jobs from a single background loop."""

    def __init__(self, tick_seconds: float = 5.0):
        self.tick_seconds = tick_seconds
        self._jobs: List[SweepJob] = []
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @classmethod
    def for_broker(
        cls,
        cache: MultiLayerCache,
        engine: PatternLearningEngine,
        cache_settings: Optional[CacheSettings] = None,
        pattern_settings: Optional[PatternSettings] = None,
    ) -> "MaintenanceScheduler":
        cache_settings = cache_settings or CacheSettings()
        pattern_settings = pattern_settings or PatternSettings()

        scheduler = cls()
        scheduler.add_job("cache_expiry", cache_settings.sweep_interval_seconds, cache.cleanup_expired)
        scheduler.add_job(
            "embedding_memo", pattern_settings.embedding_sweep_interval_seconds, engine.sweep_embeddings
        )
        scheduler.add_job(
            "pattern_cache", pattern_settings.pattern_sweep_interval_seconds, engine.sweep_patterns
        )
        return scheduler

    def add_job(self, name: str, interval_seconds: float, run: SweepFn) -> None:
        self._jobs.append(
            SweepJob(
                name=name,
                interval_seconds=interval_seconds,
                run=run,
                next_due=time.monotonic() + interval_seconds,
            )
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_due(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Run every job whose interval has elapsed, one after another.

        Returns:
            Entries removed per job that ran
        """
        now = time.monotonic() if now is None else now
        results: Dict[str, int] = {}

        for job in self._jobs:
            if now < job.next_due:
                continue

            try:
                outcome = job.run()
                if asyncio.iscoroutine(outcome):
                    outcome = await outcome
            except ContentBrokerException as e:
                job.failures += 1
                logger.error(f"Maintenance job {job.name} failed: {e}")
                outcome = 0

            job.runs += 1
            job.removed += outcome
            job.next_due = now + job.interval_seconds
            results[job.name] = outcome

            if outcome:
                logger.info(f"Maintenance job {job.name} removed {outcome} entries")

        return results

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            await self.run_due()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Maintenance scheduler started with {len(self._jobs)} jobs")

    async def stop(self) -> None:
        if not self.running:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Maintenance scheduler stopped")

    def get_status(self) -> Dict[str, Dict[str, float]]:
        return {
            job.name: {
                "interval_seconds": job.interval_seconds,
                "runs": job.runs,
                "removed": job.removed,
                "failures": job.failures,
            }
            for job in self._jobs
        }


__all__ = ["MaintenanceScheduler", "SweepJob"]
