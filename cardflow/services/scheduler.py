"""In-process task scheduler for background work.

One-off jobs (bundle deliveries) and recurring jobs (entropy sweep, bundle
catch-all sweep) run as asyncio tasks next to the web app. Delivery is
at-least-once at best: jobs do not survive a restart, which is why every
handler is idempotent and the periodic sweeps pick up anything missed.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from croniter import croniter

from cardflow.config import settings
from cardflow.core.metrics import bg_task_last_success, bg_task_runs_total
from cardflow.models.base import utcnow

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


@dataclass
class ScheduledJob:
    name: str
    when: datetime
    handler: Handler
    args: tuple = ()


@dataclass
class RecurringJob:
    name: str
    handler: Handler
    period: timedelta | None = None
    cron: str | None = None
    runs: int = field(default=0)

    def next_delay(self, now: datetime) -> float:
        if self.period is not None:
            return self.period.total_seconds()
        next_run = croniter(self.cron, now).get_next(datetime)
        return max((next_run - now).total_seconds(), 0.0)


def _as_timedelta(value: timedelta | float | int) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__name__", repr(handler))


class TaskScheduler:
    """asyncio-backed implementation of run_after / run_at / interval / cron."""

    def __init__(self, *, enabled: bool = True) -> None:
        # Disabled schedulers drop one-off jobs; the periodic sweeps cover them
        self.enabled = enabled
        self._running = False
        self._tasks: set[asyncio.Task] = set()
        self._deferred: list[ScheduledJob] = []
        self._recurring: list[RecurringJob] = []

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_jobs(self) -> list[ScheduledJob]:
        """One-off jobs registered while the scheduler was stopped."""
        return list(self._deferred)

    @property
    def recurring_jobs(self) -> list[RecurringJob]:
        return list(self._recurring)

    # ── one-off jobs ────────────────────────────────────────────────

    def run_after(self, delay: timedelta | float, handler: Handler, *args: Any) -> ScheduledJob:
        return self.run_at(utcnow() + _as_timedelta(delay), handler, *args)

    def run_at(self, when: datetime, handler: Handler, *args: Any) -> ScheduledJob:
        job = ScheduledJob(name=_handler_name(handler), when=when, handler=handler, args=args)
        if self._running:
            self._spawn(self._run_once(job))
        elif self.enabled:
            self._deferred.append(job)
        else:
            logger.debug("Scheduler disabled, dropping job %s", job.name)
        return job

    # ── recurring jobs ──────────────────────────────────────────────

    def register_interval(
        self, period: timedelta | float, handler: Handler, *, name: str | None = None
    ) -> RecurringJob:
        period = _as_timedelta(period)
        if period.total_seconds() <= 0:
            raise ValueError("Interval period must be positive")
        job = RecurringJob(name=name or _handler_name(handler), handler=handler, period=period)
        return self._add_recurring(job)

    def register_cron(
        self, expression: str, handler: Handler, *, name: str | None = None
    ) -> RecurringJob:
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid cron expression: {expression}")
        job = RecurringJob(name=name or _handler_name(handler), handler=handler, cron=expression)
        return self._add_recurring(job)

    def _add_recurring(self, job: RecurringJob) -> RecurringJob:
        self._recurring.append(job)
        if self._running:
            self._spawn(self._run_recurring(job))
        return job

    # ── lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._recurring:
            self._spawn(self._run_recurring(job))
        deferred, self._deferred = self._deferred, []
        for job in deferred:
            self._spawn(self._run_once(job))
        logger.info(
            "Scheduler started with %d recurring and %d deferred jobs",
            len(self._recurring),
            len(deferred),
        )

    async def shutdown(self) -> None:
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def clear(self) -> None:
        """Forget all registered jobs. Only valid while stopped."""
        if self._running:
            raise RuntimeError("Cannot clear a running scheduler")
        self._deferred.clear()
        self._recurring.clear()

    # ── internals ───────────────────────────────────────────────────

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_once(self, job: ScheduledJob) -> None:
        delay = (job.when - utcnow()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        await self.invoke(job.name, job.handler, *job.args)

    async def _run_recurring(self, job: RecurringJob) -> None:
        while True:
            await asyncio.sleep(job.next_delay(utcnow()))
            await self.invoke(job.name, job.handler)
            job.runs += 1

    async def invoke(self, name: str, handler: Handler, *args: Any) -> bool:
        """Run a handler once, recording metrics. Errors are logged, never raised."""
        try:
            await handler(*args)
        except asyncio.CancelledError:
            raise
        except Exception:
            bg_task_runs_total.labels(task_name=name, status="error").inc()
            logger.exception("Background task %s failed", name, extra={"task_name": name})
            return False
        bg_task_runs_total.labels(task_name=name, status="success").inc()
        bg_task_last_success.labels(task_name=name).set(time.time())
        return True


# Global singleton
scheduler = TaskScheduler(enabled=settings.RUN_BACKGROUND_TASKS)
