"""Task manager lifecycle — start, stop, schedule.

The ``TaskManager`` owns a set of ``CronJob`` definitions and runs each on
its own asyncio task.  A job waits ``period`` seconds between runs (or runs
first when ``run_on_start`` is set); a failing run is logged and the job
keeps its schedule.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tx_manager.metrics.collector import TransactionMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""
    run_on_start: bool = False


class TaskManager:
    """Manages asyncio-based maintenance jobs.

    Usage::

        tm = TaskManager(metrics=metrics)
        tm.register("cleanup", CronJob(handler=..., period=3600))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: TransactionMetrics | None = None) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._last_run: dict[str, float] = {}
        self._running = False
        self._metrics = metrics

    @property
    def is_running(self) -> bool:
        """Whether the task manager is currently running."""
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def last_run(self, name: str) -> float | None:
        """Wall-clock timestamp of the last completed run of *name*."""
        return self._last_run.get(name)

    def register(self, name: str, job: CronJob) -> None:
        """Register a job.  Can be called before or after start().

        Re-registering a name replaces the previous job.
        """
        if job.period <= 0:
            msg = f"period of {name!r} must be positive"
            raise ValueError(msg)
        resolved = replace(job, name=name)
        previous = self._tasks.pop(name, None)
        if previous is not None:
            previous.cancel()
        self._jobs[name] = resolved
        if self._running:
            self._tasks[name] = asyncio.create_task(self._run_loop(resolved))

    async def run_now(self, name: str) -> None:
        """Run job *name* once, outside its schedule.

        Raises:
            KeyError: If no job of that name is registered.
        """
        await self._execute(self._jobs[name])

    async def start(self) -> None:
        """Start all registered jobs."""
        if self._running:
            return
        self._running = True
        for name, job in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_loop(job), name=f"cron-{name}")
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Cancel all running jobs and wait for them to unwind."""
        if not self._running:
            return
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError):
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        logger.info("TaskManager stopped")

    async def _run_loop(self, job: CronJob) -> None:
        if job.run_on_start and self._running:
            await self._execute(job)
        while self._running:
            await asyncio.sleep(job.period)
            if not self._running:
                break
            await self._execute(job)

    async def _execute(self, job: CronJob) -> None:
        name = job.name or "unnamed"
        try:
            if self._metrics:
                with self._metrics.track_cron(name):
                    await job.handler()
            else:
                await job.handler()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Cron job %r failed", name)
        else:
            self._last_run[name] = time.time()
