"""Governance tasks: registry, runner and idempotent scheduler."""

from pinchwire.governance.runner import FINDING_EVENT_TYPE, TaskRunner, TaskRunResult
from pinchwire.governance.scheduler import (
    REGISTRATION_KEY,
    ScheduleResult,
    TaskScheduler,
    compute_fingerprint,
)
from pinchwire.governance.tasks import (
    DEFAULT_INTERVALS,
    Finding,
    Severity,
    TaskDefinition,
    TaskRegistry,
    hook_name,
)

__all__ = [
    "DEFAULT_INTERVALS",
    "FINDING_EVENT_TYPE",
    "Finding",
    "REGISTRATION_KEY",
    "ScheduleResult",
    "Severity",
    "TaskDefinition",
    "TaskRegistry",
    "TaskRunResult",
    "TaskRunner",
    "TaskScheduler",
    "compute_fingerprint",
    "hook_name",
]
