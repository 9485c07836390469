"""Named, cancellable scheduled jobs owned by a bridge session.

Scheduling a job under a name that is already pending replaces it, so the
reconnect, resubscribe, watchdog and debug-off timers can never stack up, and
tearing down a session with ``cancel_all()`` leaves no stray timers behind.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from z2m_bridge.correlation import correlation_context
from z2m_bridge.logging_abstraction import get_logger

__all__ = ["JobCallback", "ScheduledJob", "TaskScheduler"]

logger = get_logger(__name__)

type JobCallback = Callable[[], Awaitable[object] | None]


@dataclass
class ScheduledJob:
    name: str
    delay: float
    callback: JobCallback
    periodic: bool = False
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)


class TaskScheduler:
    """Runs named jobs on the running asyncio loop after a delay (or periodically)."""

    def __init__(self, owner: str = "bridge") -> None:
        self.lp: str = f"{owner}:scheduler:"
        self._jobs: dict[str, ScheduledJob] = {}
        self._running: set[asyncio.Task[None]] = set()

    def schedule(self, name: str, delay: float, callback: JobCallback) -> ScheduledJob:
        """Run ``callback`` once after ``delay`` seconds, replacing any pending job of that name."""
        return self._arm(ScheduledJob(name=name, delay=delay, callback=callback))

    def every(self, name: str, interval: float, callback: JobCallback) -> ScheduledJob:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        return self._arm(ScheduledJob(name=name, delay=interval, callback=callback, periodic=True))

    def _arm(self, job: ScheduledJob) -> ScheduledJob:
        _ = self.cancel(job.name)
        loop = asyncio.get_running_loop()
        job.handle = loop.call_later(job.delay, self._fire, job)
        self._jobs[job.name] = job
        logger.debug("%s scheduled '%s' in %ss (periodic=%s)", self.lp, job.name, job.delay, job.periodic)
        return job

    def _fire(self, job: ScheduledJob) -> None:
        if self._jobs.get(job.name) is not job:
            return
        if job.periodic:
            job.handle = asyncio.get_running_loop().call_later(job.delay, self._fire, job)
        else:
            # removed before running so the callback may re-schedule or cancel its own name
            del self._jobs[job.name]
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"job:{job.name}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, job: ScheduledJob) -> None:
        with correlation_context(prefix="job"):
            try:
                result = job.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                logger.debug("%s job '%s' cancelled", self.lp, job.name)
                raise
            except Exception:
                logger.exception("%s job '%s' failed", self.lp, job.name)

    def cancel(self, name: str) -> bool:
        """Cancel a pending job. Returns True if one was pending."""
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        if job.handle is not None:
            job.handle.cancel()
        logger.debug("%s cancelled '%s'", self.lp, name)
        return True

    def cancel_all(self) -> None:
        """Cancel every pending job and every job still running (except the caller's own task)."""
        for name in list(self._jobs):
            _ = self.cancel(name)
        current = asyncio.current_task()
        for task in list(self._running):
            if task is not current and not task.done():
                _ = task.cancel()

    def is_pending(self, name: str) -> bool:
        return name in self._jobs

    def delay_of(self, name: str) -> float | None:
        """Delay a pending job was scheduled with, or None."""
        job = self._jobs.get(name)
        return job.delay if job else None

    @property
    def pending(self) -> list[str]:
        return sorted(self._jobs)

    async def drain(self) -> None:
        """Wait for jobs that have already fired to finish."""
        current = asyncio.current_task()
        running = [t for t in self._running if t is not current]
        if running:
            _ = await asyncio.gather(*running, return_exceptions=True)
