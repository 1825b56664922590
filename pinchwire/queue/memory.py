"""In-memory durable job queue for lite mode, local runs and tests."""

from __future__ import annotations

import copy
import inspect
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pinchwire.queue.base import JobHandler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScheduledJob:
    """One pending job. ``interval_seconds`` is ``None`` for one-off jobs."""

    job_id: str
    hook_name: str
    run_at: datetime
    args: dict[str, Any] = field(default_factory=dict)
    interval_seconds: int | None = None

    @property
    def recurring(self) -> bool:
        return self.interval_seconds is not None


@dataclass(slots=True)
class JobRun:
    """Outcome of firing one job from ``run_due``."""

    hook_name: str
    args: dict[str, Any]
    result: Any = None
    error: BaseException | None = None


class InMemoryJobQueue:
    """Job queue that keeps jobs in process memory and fires them from ``run_due``.

    Every schedule/unschedule call is appended to ``mutations`` so callers can
    assert how often the queue was touched.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._jobs: list[ScheduledJob] = []
        self._handlers: dict[str, JobHandler] = {}
        self._ids = itertools.count(1)
        self.mutations: list[tuple[str, str]] = []

    @property
    def mutation_count(self) -> int:
        return len(self.mutations)

    def register_handler(self, hook_name: str, handler: JobHandler) -> None:
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handlers[hook_name] = handler

    def has_handler(self, hook_name: str) -> bool:
        return hook_name in self._handlers

    def check_recurring(self, hook_name: str, interval_seconds: int) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive: {hook_name}")

    async def schedule_recurring(
        self,
        hook_name: str,
        interval_seconds: int,
        args: dict[str, Any] | None = None,
    ) -> str:
        self.check_recurring(hook_name, interval_seconds)
        job = ScheduledJob(
            job_id=f"job-{next(self._ids)}",
            hook_name=hook_name,
            run_at=self._clock() + timedelta(seconds=interval_seconds),
            args=copy.deepcopy(args or {}),
            interval_seconds=interval_seconds,
        )
        self._jobs.append(job)
        self.mutations.append(("schedule_recurring", hook_name))
        return job.job_id

    async def schedule_once_at(
        self,
        hook_name: str,
        run_at: datetime,
        args: dict[str, Any] | None = None,
    ) -> str:
        job = ScheduledJob(
            job_id=f"job-{next(self._ids)}",
            hook_name=hook_name,
            run_at=run_at,
            args=copy.deepcopy(args or {}),
        )
        self._jobs.append(job)
        self.mutations.append(("schedule_once_at", hook_name))
        return job.job_id

    async def unschedule_all(self, hook_name: str) -> int:
        before = len(self._jobs)
        self._jobs = [job for job in self._jobs if job.hook_name != hook_name]
        self.mutations.append(("unschedule_all", hook_name))
        return before - len(self._jobs)

    def jobs(self, hook_name: str | None = None) -> list[ScheduledJob]:
        selected = [job for job in self._jobs if hook_name is None or job.hook_name == hook_name]
        return sorted(selected, key=lambda job: job.run_at)

    def recurring_hooks(self) -> dict[str, int]:
        return {job.hook_name: job.interval_seconds for job in self._jobs if job.interval_seconds is not None}

    async def run_due(self, now: datetime | None = None) -> list[JobRun]:
        """Fire every job due at ``now`` in time order.

        Jobs scheduled by a handler during this call are not fired until the
        next call, even when already due. Recurring jobs are advanced by their
        interval; one-off jobs are removed before their handler runs.
        """
        current = now or self._clock()
        due = sorted((job for job in self._jobs if job.run_at <= current), key=lambda job: job.run_at)
        runs: list[JobRun] = []
        for job in due:
            if job.recurring:
                assert job.interval_seconds is not None
                while job.run_at <= current:
                    job.run_at += timedelta(seconds=job.interval_seconds)
            else:
                self._jobs.remove(job)
            runs.append(await self._fire(job))
        return runs

    async def _fire(self, job: ScheduledJob) -> JobRun:
        run = JobRun(hook_name=job.hook_name, args=copy.deepcopy(job.args))
        handler = self._handlers.get(job.hook_name)
        if handler is None:
            logger.warning("no handler registered hook=%s job_id=%s", job.hook_name, job.job_id)
            return run
        try:
            result = handler(copy.deepcopy(job.args))
            if inspect.isawaitable(result):
                result = await result
            run.result = result
        except Exception as exc:
            logger.exception("job handler failed hook=%s job_id=%s", job.hook_name, job.job_id)
            run.error = exc
        return run
