"""Task runner: execute one governance task and hand its findings to the dispatcher."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.types import GOVERNANCE_ERROR, GOVERNANCE_FINDING
from pinchwire.config.models import GovernanceConfig
from pinchwire.delivery.dispatcher import DeliveryDispatcher
from pinchwire.governance.tasks import Finding, Severity, TaskRegistry, coerce_findings
from pinchwire.hooks import GOVERNANCE_FINDINGS, HookRegistry, is_suppressed
from pinchwire.queue.base import JobQueue

logger = logging.getLogger(__name__)

FINDING_EVENT_TYPE = "governance_finding"
AUDIT_SOURCE = "governance"


@dataclass(slots=True)
class TaskRunResult:
    """Outcome of one task run."""

    task_name: str
    findings: list[Finding] = field(default_factory=list)
    suppressed: bool = False
    delivered: bool = False
    error: str | None = None

    @property
    def reported(self) -> bool:
        return bool(self.findings) and not self.suppressed


def _highest_severity(findings: list[Finding]) -> Severity:
    return max((finding.severity for finding in findings), key=lambda severity: severity.rank)


def _summarize(task_name: str, findings: list[Finding]) -> str:
    if len(findings) == 1:
        return findings[0].summary
    return f"{len(findings)} findings reported by {task_name}."


class TaskRunner:
    """Run registered tasks on demand or from the job queue.

    Findings are not deduplicated against earlier runs: an unresolved issue is
    reported again on every run until the underlying condition is fixed.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        dispatcher: DeliveryDispatcher,
        ledger: AuditLedgerBase,
        config: GovernanceConfig,
        *,
        hooks: HookRegistry | None = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._ledger = ledger
        self._config = config
        self._hooks = hooks

    def configure(self, config: GovernanceConfig) -> None:
        self._config = config

    async def run_task(self, task_name: str) -> TaskRunResult:
        """Run ``task_name`` once and deliver its findings as one event.

        Raises:
            UnknownTaskError: ``task_name`` is not registered.
        """
        definition = self._registry.get(task_name)
        try:
            raw = definition.func()
            if inspect.isawaitable(raw):
                raw = await raw
            findings = coerce_findings(task_name, raw)
        except Exception as exc:
            logger.exception("governance task failed task=%s", task_name)
            await self._ledger.insert(
                GOVERNANCE_ERROR,
                AUDIT_SOURCE,
                f"Task {task_name} failed: {exc}",
                {"task": task_name, "error": f"{type(exc).__name__}: {exc}"},
            )
            raise

        result = TaskRunResult(task_name=task_name, findings=findings)
        if not findings:
            logger.debug("governance task produced no findings task=%s", task_name)
            return result

        if self._hooks is not None:
            filtered = await self._hooks.apply_filters(GOVERNANCE_FINDINGS, list(findings), task_name)
            if is_suppressed(filtered) or not filtered:
                logger.info("governance findings suppressed task=%s count=%d", task_name, len(findings))
                result.suppressed = True
                return result
            result.findings = findings = coerce_findings(task_name, filtered)

        severity = _highest_severity(findings)
        message = _summarize(task_name, findings)
        context: dict[str, Any] = {
            "task": task_name,
            "severity": severity.value,
            "count": len(findings),
            "findings": [finding.to_dict() for finding in findings],
        }
        await self._ledger.insert(GOVERNANCE_FINDING, AUDIT_SOURCE, message, context)
        result.delivered = await self._dispatcher.dispatch(FINDING_EVENT_TYPE, message, context)
        logger.info(
            "governance task reported task=%s count=%d severity=%s delivered=%s",
            task_name,
            len(findings),
            severity.value,
            result.delivered,
        )
        return result

    async def run_all(self) -> list[TaskRunResult]:
        """Run every enabled task; a failing task is recorded and the rest still run."""
        results: list[TaskRunResult] = []
        for name in self._registry.enabled_names(self._config):
            try:
                results.append(await self.run_task(name))
            except Exception as exc:
                results.append(TaskRunResult(task_name=name, error=f"{type(exc).__name__}: {exc}"))
        return results

    async def handle_task_job(self, args: dict[str, Any]) -> TaskRunResult | None:
        """Job queue entry point for ``pinchwire_governance_<task>`` hooks."""
        task_name = str(args.get("task", ""))
        if task_name not in self._registry.enabled_names(self._config):
            logger.info("stale governance job ignored task=%s", task_name)
            return None
        return await self.run_task(task_name)

    def register(self, queue: JobQueue) -> None:
        """Register one job handler per task hook."""
        for definition in self._registry.definitions():
            queue.register_handler(definition.hook_name, self.handle_task_job)
