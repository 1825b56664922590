"""Findings, task definitions and the registry of pluggable governance tasks."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from pinchwire.config.models import GovernanceConfig
from pinchwire.errors import UnknownTaskError

HOUR = 3600
DAY = 24 * HOUR
WEEK = 7 * DAY

DEFAULT_INTERVALS: dict[str, int] = {
    "content_freshness": DAY,
    "semantic_content_freshness": WEEK,
    "seo_health": DAY,
    "comment_sweep": 6 * HOUR,
    "broken_links": WEEK,
    "security_scan": DAY,
    "draft_necromancer": WEEK,
    "spaced_resurfacing": DAY,
    "tide_report": DAY,
}

HOOK_PREFIX = "pinchwire_governance_"


def hook_name(task_name: str) -> str:
    return f"{HOOK_PREFIX}{task_name}"


class Severity(str, Enum):
    """Finding severity, ordered info < warning < critical."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


@dataclass(frozen=True, slots=True)
class Finding:
    """One issue detected by a task run. Never mutated; a later run re-emits it."""

    task_name: str
    severity: Severity
    summary: str
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity(str(self.severity).strip().lower()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_name": self.task_name,
            "severity": self.severity.value,
            "summary": self.summary,
            "context": dict(self.context),
        }


TaskResult = Union[Iterable[Union[Finding, Mapping[str, Any]]], None]
TaskFunction = Callable[[], Union[TaskResult, Awaitable[TaskResult]]]


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """A named task function and its default run interval in seconds."""

    name: str
    func: TaskFunction
    interval_seconds: int
    description: str = ""

    @property
    def hook_name(self) -> str:
        return hook_name(self.name)


class TaskRegistry:
    """Registered governance tasks keyed by name."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskDefinition] = {}

    def register(
        self,
        name: str,
        func: TaskFunction,
        interval_seconds: int | None = None,
        description: str | None = None,
    ) -> TaskDefinition:
        task_name = name.strip() if isinstance(name, str) else ""
        if not task_name:
            raise ValueError("task name must be a non-empty string")
        if not callable(func):
            raise TypeError("task function must be callable")
        interval = interval_seconds if interval_seconds is not None else DEFAULT_INTERVALS.get(task_name)
        if interval is None:
            raise ValueError(f"interval_seconds is required for task {task_name}")
        if interval < 60:
            raise ValueError("interval_seconds must be at least 60")
        if description is None:
            description = ((func.__doc__ or "").strip().splitlines() or [""])[0]
        definition = TaskDefinition(task_name, func, int(interval), description)
        self._tasks[task_name] = definition
        return definition

    def get(self, name: str) -> TaskDefinition:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def names(self) -> list[str]:
        return sorted(self._tasks)

    def definitions(self) -> list[TaskDefinition]:
        return [self._tasks[name] for name in self.names()]

    def enabled_names(self, config: GovernanceConfig) -> list[str]:
        """Enabled task names; an empty ``enabled_tasks`` list enables every registered task.

        Raises:
            UnknownTaskError: a configured name has no registered task.
        """
        if not config.enabled_tasks:
            return self.names()
        for name in config.enabled_tasks:
            if name not in self._tasks:
                raise UnknownTaskError(name)
        return sorted(set(config.enabled_tasks))

    def interval_for(self, name: str, config: GovernanceConfig) -> int:
        return int(config.intervals.get(name, self.get(name).interval_seconds))


def coerce_findings(task_name: str, raw: TaskResult) -> list[Finding]:
    """Normalize a task function's return value into a list of findings."""
    if raw is None:
        return []
    findings: list[Finding] = []
    for item in raw:
        if isinstance(item, Finding):
            findings.append(item)
        elif isinstance(item, Mapping):
            findings.append(
                Finding(
                    task_name=str(item.get("task_name") or task_name),
                    severity=item.get("severity", Severity.INFO),
                    summary=str(item.get("summary", "")),
                    context=dict(item.get("context") or {}),
                )
            )
        else:
            raise TypeError(f"task {task_name} returned unsupported finding type {type(item).__name__}")
    return findings
