"""Pinchwire main application class."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.ledger import AuditLedger
from pinchwire.audit.ledger_inmemory import InMemoryAuditLedger
from pinchwire.audit.types import CIRCUIT_RESET
from pinchwire.config import ConfigManager, PinchwireConfig, register_app_reload_listener
from pinchwire.db import Base, create_engine, create_session_factory
from pinchwire.db.engine import DATABASE_URL_ENV
from pinchwire.delivery.circuit_breaker import CircuitBreaker
from pinchwire.delivery.dispatcher import RETRY_HOOK, DeliveryDispatcher
from pinchwire.delivery.rate_limit import WebhookRateLimiter
from pinchwire.events import SiteEventNotifier
from pinchwire.governance.runner import TaskRunner, TaskRunResult
from pinchwire.governance.scheduler import ScheduleResult, TaskScheduler
from pinchwire.governance.tasks import TaskFunction, TaskRegistry
from pinchwire.hooks import HookRegistry
from pinchwire.queue.base import JobQueue
from pinchwire.queue.hatchet import HatchetClient, HatchetConfig, HatchetJobQueue
from pinchwire.queue.memory import InMemoryJobQueue
from pinchwire.state.store import InMemoryStateStore, StateStore
from pinchwire.state.store_sql import SQLStateStore

logger = logging.getLogger(__name__)

AUDIT_CLEANUP_HOOK = "pinchwire_audit_cleanup"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Pinchwire:
    """Pinchwire application: wires the scheduler, runner, dispatcher and ledger.

    Usage::

        from pinchwire import Finding, Pinchwire

        app = Pinchwire.from_config()

        @app.task("seo_health")
        async def seo_health() -> list[Finding]:
            ...

        await app.install()
    """

    def __init__(
        self,
        name: str = "pinchwire",
        *,
        config: PinchwireConfig | None = None,
        hooks: HookRegistry | None = None,
        state_store: StateStore | None = None,
        ledger: AuditLedgerBase | None = None,
        queue: JobQueue | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        version: str | None = None,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("name must be a non-empty string")
        from pinchwire import __version__

        self.name = name.strip()
        self.config = config or ConfigManager.instance().get()
        self._clock = clock or _utc_now
        self._engine: AsyncEngine | None = None
        self._handlers_registered = False

        self.hooks = hooks or HookRegistry()
        self.tasks = TaskRegistry()
        self.state_store: StateStore = state_store or InMemoryStateStore()
        self.ledger: AuditLedgerBase = ledger or InMemoryAuditLedger(
            hooks=self.hooks,
            retention_days=self.config.audit.retention_days,
            export_max_rows=self.config.audit.export_max_rows,
            erase_batch_size=self.config.audit.erase_batch_size,
            clock=self._clock,
        )
        self.queue: JobQueue = queue or InMemoryJobQueue(clock=self._clock)
        self.breaker = CircuitBreaker(self.state_store, clock=lambda: self._clock().timestamp())
        self.rate_limiter = WebhookRateLimiter(
            self.state_store, self.config.delivery, clock=lambda: self._clock().timestamp()
        )
        self.dispatcher = DeliveryDispatcher(
            self.config.gateway,
            self.breaker,
            self.ledger,
            self.queue,
            hooks=self.hooks,
            transport=transport,
            rate_limiter=self.rate_limiter,
            clock=self._clock,
        )
        self.runner = TaskRunner(
            self.tasks,
            self.dispatcher,
            self.ledger,
            self.config.governance,
            hooks=self.hooks,
        )
        self.scheduler = TaskScheduler(
            self.tasks,
            self.queue,
            self.state_store,
            self.ledger,
            self.config.governance,
            version=version or __version__,
        )
        self.events = SiteEventNotifier(self.dispatcher, self.config.events)

    @classmethod
    def from_config(
        cls,
        name: str = "pinchwire",
        *,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Pinchwire:
        """Build an app from pinchwire.yaml + env.

        A database URL selects SQL-backed state and ledger; ``hatchet.enabled``
        selects the Hatchet job queue. Otherwise everything is in memory.
        """
        manager = ConfigManager.load(config_path, overrides)
        cfg = manager.get()
        hooks = kwargs.pop("hooks", None) or HookRegistry()
        engine: AsyncEngine | None = None

        database_url = cfg.database.url or os.environ.get(DATABASE_URL_ENV, "").strip()
        if database_url and "ledger" not in kwargs and "state_store" not in kwargs:
            engine = create_engine(
                database_url,
                pool_size=cfg.database.pool_size,
                max_overflow=cfg.database.max_overflow,
                echo=cfg.database.echo,
            )
            session_factory = create_session_factory(engine)
            kwargs["state_store"] = SQLStateStore(session_factory)
            kwargs["ledger"] = AuditLedger(
                session_factory,
                hooks=hooks,
                retention_days=cfg.audit.retention_days,
                export_max_rows=cfg.audit.export_max_rows,
                erase_batch_size=cfg.audit.erase_batch_size,
            )

        if cfg.hatchet.enabled and "queue" not in kwargs:
            hatchet_data: dict[str, Any] = {"namespace": cfg.hatchet.namespace, "api_token": cfg.hatchet.api_token}
            if cfg.hatchet.server_url:
                hatchet_data["server_url"] = cfg.hatchet.server_url
            client = HatchetClient(HatchetConfig.model_validate(hatchet_data))
            client.connect()
            kwargs["queue"] = HatchetJobQueue(client)

        app = cls(name, config=cfg, hooks=hooks, **kwargs)
        app._engine = engine
        register_app_reload_listener(app, manager)
        logger.info(
            "pinchwire app built name=%s storage=%s queue=%s gateway_configured=%s",
            app.name,
            "sql" if engine is not None else "memory",
            type(app.queue).__name__,
            cfg.gateway.is_configured,
        )
        return app

    def task(
        self,
        name: str | None = None,
        *,
        interval_seconds: int | None = None,
        description: str | None = None,
    ) -> Callable[[TaskFunction], TaskFunction]:
        """Decorator registering a governance task function.

        Built-in task names default to their standard interval; any other
        name needs ``interval_seconds``.
        """

        def decorator(fn: TaskFunction) -> TaskFunction:
            task_name = name if name is not None else getattr(fn, "__name__", "")
            definition = self.tasks.register(task_name, fn, interval_seconds, description)
            if self._handlers_registered:
                self.queue.register_handler(definition.hook_name, self.runner.handle_task_job)
            return fn

        return decorator

    def apply_config(self, config: PinchwireConfig) -> None:
        """Push a new config snapshot into every component."""
        self.config = config
        self.dispatcher.configure(config.gateway)
        self.rate_limiter.configure(config.delivery)
        self.runner.configure(config.governance)
        self.scheduler.configure(config.governance)
        self.events.configure(config.events)
        self.ledger.retention_days = config.audit.retention_days
        self.ledger.export_max_rows = config.audit.export_max_rows
        self.ledger.erase_batch_size = config.audit.erase_batch_size

    def register_handlers(self) -> None:
        """Register every job handler with the queue. Needed in each worker process."""
        if self._handlers_registered:
            return
        self.dispatcher.register()
        self.runner.register(self.queue)
        self.queue.register_handler(AUDIT_CLEANUP_HOOK, self.ledger.cleanup_job)
        self._handlers_registered = True

    def start_worker(self) -> None:
        """Register handlers and block running the queue's worker loop."""
        self.register_handlers()
        start = getattr(self.queue, "start_worker", None)
        if start is None:
            raise RuntimeError(
                f"{type(self.queue).__name__} has no worker; enable hatchet to run jobs out of process"
            )
        logger.info("starting pinchwire worker name=%s queue=%s", self.name, type(self.queue).__name__)
        start()

    async def create_tables(self) -> None:
        """Create tables directly from the ORM metadata (lite deployments and tests)."""
        if self._engine is None:
            raise RuntimeError("create_tables() requires a database-backed app")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def install(self) -> ScheduleResult:
        """Register handlers, (re)schedule the audit sweep and register enabled tasks."""
        self.register_handlers()
        await self.queue.unschedule_all(AUDIT_CLEANUP_HOOK)
        await self.queue.schedule_recurring(AUDIT_CLEANUP_HOOK, self.config.audit.cleanup_interval_seconds, {})
        return await self.scheduler.ensure_tasks_scheduled()

    async def ensure_tasks_scheduled(self) -> ScheduleResult:
        """Resync task registrations; handlers are registered first so the queue accepts them."""
        self.register_handlers()
        return await self.scheduler.ensure_tasks_scheduled()

    async def run_task(self, task_name: str) -> TaskRunResult:
        return await self.runner.run_task(task_name)

    async def run_all(self) -> list[TaskRunResult]:
        return await self.runner.run_all()

    async def dispatch(self, event_type: str, message: str, context: dict[str, Any] | None = None) -> bool:
        return await self.dispatcher.dispatch(event_type, message, context)

    async def circuit_status(self) -> dict[str, Any]:
        return await self.dispatcher.circuit_status()

    async def reset_circuit(self, actor: str | None = None) -> None:
        """Administrative override: close the circuit and record who did it."""
        before = await self.breaker.status()
        await self.breaker.reset()
        await self.ledger.insert(
            CIRCUIT_RESET,
            "admin",
            "Circuit breaker reset manually.",
            {"previous_state": before["state"], "previous_failures": before["consecutive_failures"], "actor": actor},
        )

    async def uninstall(self) -> dict[str, Any]:
        """Remove every job, persisted state blob and audit entry this app created."""
        tasks = await self.scheduler.unschedule_all()
        await self.queue.unschedule_all(RETRY_HOOK)
        await self.queue.unschedule_all(AUDIT_CLEANUP_HOOK)
        await self.state_store.delete(self.breaker.store_key)
        await self.state_store.delete(self.rate_limiter.store_key)
        removed = await self.ledger.clear()
        logger.info("pinchwire uninstalled name=%s tasks=%d audit_removed=%d", self.name, len(tasks), removed)
        return {"unscheduled_tasks": tasks, "audit_entries_removed": removed}

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    def health_status(self) -> dict[str, Any]:
        return {
            "app": self.name,
            "gateway_configured": self.dispatcher.is_configured,
            "tasks_registered": len(self.tasks),
            "handlers_registered": self._handlers_registered,
            "storage": "sql" if self._engine is not None else "memory",
        }
