"""
Background job runner.

Each job owns an asyncio task that fires on a fixed interval or at a UTC
wall-clock time, every day or on one day of the week. Runs are guarded by a
per-job lock: a trigger that arrives while the previous run is still going is
skipped, never queued.
"""

import asyncio
import calendar
from typing import Dict, List, Optional, Set

from gorillionaire.core.logger import Logger
from gorillionaire.core.sentry import capture_exception
from gorillionaire.core.timezone import seconds_until

logger = Logger("Scheduler")


class ScheduledJob:
    name = "job"

    def __init__(
        self,
        interval: float = None,
        daily_at: str = None,
        run_on_start: bool = False,
        weekday: int = None,
    ):
        if (interval is None) == (daily_at is None):
            raise ValueError("A job needs exactly one of interval or daily_at")
        if weekday is not None and daily_at is None:
            raise ValueError("weekday only applies to daily_at jobs")
        self.interval = interval
        self.daily_at = daily_at
        # Restricts a daily_at job to one day of the week, Monday is 0
        self.weekday = weekday
        self.run_on_start = run_on_start
        self.is_running = False
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self._lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    async def run(self):
        raise NotImplementedError

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> bool:
        """Run now unless a run is already in flight. Returns False when skipped."""
        if self._lock.locked():
            self.skipped += 1
            logger.warn(f"⏭️ {self.name}: previous run still in progress, skipping")
            return False

        async with self._lock:
            try:
                await self.run()
                self.runs += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                logger.error(f"❌ {self.name} failed: {e}", e)
                capture_exception(e, component="scheduler", job=self.name)
        return True

    def next_delay(self) -> float:
        if self.interval is not None:
            return self.interval
        return seconds_until(self.daily_at, weekday=self.weekday)

    def trigger(self) -> asyncio.Task:
        # Fire-and-track so a slow run never delays the timer
        task = asyncio.create_task(self.run_once())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _loop(self):
        if self.run_on_start:
            self.trigger()
        while self.is_running:
            await asyncio.sleep(self.next_delay())
            if self.is_running:
                self.trigger()

    async def start(self):
        if self.is_running:
            return
        self.is_running = True
        self._loop_task = asyncio.create_task(self._loop())
        if self.interval is not None:
            schedule = f"every {self.interval:g}s"
        elif self.weekday is not None:
            schedule = f"weekly on {calendar.day_name[self.weekday]} at {self.daily_at} UTC"
        else:
            schedule = f"daily at {self.daily_at} UTC"
        logger.info(f"✅ {self.name} scheduled {schedule}")

    async def stop(self):
        self.is_running = False
        tasks = list(self._inflight)
        if self._loop_task:
            tasks.append(self._loop_task)
            self._loop_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"{self.name} stopped")


class Scheduler:
    def __init__(self):
        self.jobs: Dict[str, ScheduledJob] = {}

    def add(self, job: ScheduledJob) -> ScheduledJob:
        self.jobs[job.name] = job
        return job

    @property
    def is_running(self) -> bool:
        return any(job.is_running for job in self.jobs.values())

    async def start(self):
        for job in self.jobs.values():
            await job.start()

    async def stop(self):
        for job in self.jobs.values():
            await job.stop()

    def status(self) -> List[Dict]:
        return [
            {
                "name": job.name,
                "running": job.is_running,
                "busy": job.busy,
                "runs": job.runs,
                "skipped": job.skipped,
                "failures": job.failures,
            }
            for job in self.jobs.values()
        ]


scheduler = Scheduler()
