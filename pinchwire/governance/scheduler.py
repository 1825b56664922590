"""Idempotent registration of governance tasks in the durable job queue."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.types import SCHEDULER_ERROR
from pinchwire.config.models import GovernanceConfig
from pinchwire.governance.tasks import DEFAULT_INTERVALS, TaskRegistry, hook_name
from pinchwire.queue.base import JobQueue
from pinchwire.state.store import StateStore

logger = logging.getLogger(__name__)

REGISTRATION_KEY = "pinchwire:governance:registration"
AUDIT_SOURCE = "scheduler"


def compute_fingerprint(version: str, desired: dict[str, int]) -> str:
    """Hash of the software version and the enabled task -> interval mapping."""
    payload = json.dumps({"version": version, "tasks": sorted(desired.items())}, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class ScheduleResult:
    """What one ``ensure_tasks_scheduled`` call did to the job queue."""

    fingerprint: str
    changed: bool
    scheduled: list[str] = field(default_factory=list)
    unscheduled: list[str] = field(default_factory=list)
    error: str | None = None


class TaskScheduler:
    """Keep recurring job registrations in line with the enabled task set.

    The persisted registration blob holds the last fingerprint, the version it
    was computed for and the task -> interval map actually registered. When the
    fingerprint matches nothing touches the queue. When only the task set or
    intervals changed, only tasks whose registration differs are unscheduled
    and rescheduled. A version change re-registers every known task.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        queue: JobQueue,
        state_store: StateStore,
        ledger: AuditLedgerBase,
        config: GovernanceConfig,
        *,
        version: str,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._store = state_store
        self._ledger = ledger
        self._config = config
        self._version = version

    @property
    def version(self) -> str:
        return self._config.version or self._version

    def configure(self, config: GovernanceConfig) -> None:
        self._config = config

    def desired_registrations(self) -> dict[str, int]:
        """Enabled task -> effective interval.

        Raises:
            UnknownTaskError: an enabled name has no registered task.
        """
        return {
            name: self._registry.interval_for(name, self._config)
            for name in self._registry.enabled_names(self._config)
        }

    async def ensure_tasks_scheduled(self) -> ScheduleResult:
        desired = self.desired_registrations()
        version = self.version
        fingerprint = compute_fingerprint(version, desired)
        stored = await self._store.get(REGISTRATION_KEY)
        if isinstance(stored, dict) and stored.get("fingerprint") == fingerprint:
            return ScheduleResult(fingerprint=fingerprint, changed=False)

        previous = _previous_registrations(stored, version)
        if previous is None:
            candidates = set(self._registry.names()) | set(DEFAULT_INTERVALS) | _stored_names(stored)
            registered: dict[str, int] = {}
            force = True
        else:
            candidates = set(previous) | set(desired)
            registered = dict(previous)
            force = False

        result = ScheduleResult(fingerprint=fingerprint, changed=True)
        plan = [
            (name, desired.get(name))
            for name in sorted(candidates)
            if force or registered.get(name) != desired.get(name)
        ]
        processed: set[str] = set()
        try:
            # Existing triggers are only removed once every replacement is known to be accepted.
            for name, target in plan:
                if target is not None:
                    self._queue.check_recurring(hook_name(name), target)
            for name, target in plan:
                processed.add(name)
                await self._queue.unschedule_all(hook_name(name))
                registered.pop(name, None)
                result.unscheduled.append(name)
                if target is not None:
                    await self._queue.schedule_recurring(hook_name(name), target, {"task": name})
                    registered[name] = target
                    result.scheduled.append(name)
        except Exception as exc:
            logger.exception("task scheduling failed version=%s", version)
            result.error = f"{type(exc).__name__}: {exc}"
            if force:
                # Triggers not reached in this pass are still live under their old interval.
                for name, interval in _stored_registrations(stored).items():
                    if name not in processed:
                        registered.setdefault(name, interval)
            await self._persist(None, version, registered)
            await self._ledger.insert(
                SCHEDULER_ERROR,
                AUDIT_SOURCE,
                f"Failed to schedule governance tasks: {exc}",
                {"error": result.error, "registered": sorted(registered)},
            )
            return result

        await self._persist(fingerprint, version, registered)
        logger.info(
            "governance tasks registered version=%s scheduled=%s unscheduled=%s",
            version,
            result.scheduled,
            result.unscheduled,
        )
        return result

    async def unschedule_all(self) -> list[str]:
        """Remove every task registration and forget the fingerprint."""
        stored = await self._store.get(REGISTRATION_KEY)
        names = sorted(set(self._registry.names()) | set(DEFAULT_INTERVALS) | _stored_names(stored))
        for name in names:
            await self._queue.unschedule_all(hook_name(name))
        await self._store.delete(REGISTRATION_KEY)
        return names

    async def registered_tasks(self) -> dict[str, int]:
        stored = await self._store.get(REGISTRATION_KEY)
        if not isinstance(stored, dict):
            return {}
        return dict(stored.get("registered") or {})

    async def _persist(self, fingerprint: str | None, version: str, registered: dict[str, int]) -> None:
        await self._store.set(
            REGISTRATION_KEY,
            {"fingerprint": fingerprint, "version": version, "registered": dict(sorted(registered.items()))},
        )


def _stored_registrations(stored: Any) -> dict[str, int]:
    if not isinstance(stored, dict) or not isinstance(stored.get("registered"), dict):
        return {}
    return {str(name): int(interval) for name, interval in stored["registered"].items()}


def _previous_registrations(stored: Any, version: str) -> dict[str, int] | None:
    if not isinstance(stored, dict) or stored.get("version") != version:
        return None
    if not isinstance(stored.get("registered"), dict):
        return None
    return _stored_registrations(stored)


def _stored_names(stored: Any) -> set[str]:
    return set(_stored_registrations(stored))
