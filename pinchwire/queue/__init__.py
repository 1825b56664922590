"""Durable job queue contract and its in-memory and Hatchet implementations."""

from pinchwire.queue.base import JobHandler, JobQueue
from pinchwire.queue.hatchet import HatchetClient, HatchetConfig, HatchetJobQueue, interval_to_cron
from pinchwire.queue.memory import InMemoryJobQueue, JobRun, ScheduledJob

__all__ = [
    "HatchetClient",
    "HatchetConfig",
    "HatchetJobQueue",
    "InMemoryJobQueue",
    "JobHandler",
    "JobQueue",
    "JobRun",
    "ScheduledJob",
    "interval_to_cron",
]
