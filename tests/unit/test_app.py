"""Unit tests for the Pinchwire application facade."""

from __future__ import annotations

from pathlib import Path

import pytest

from pinchwire import Pinchwire
from pinchwire.app import AUDIT_CLEANUP_HOOK
from pinchwire.audit import AuditLedger
from pinchwire.config import ConfigManager
from pinchwire.delivery import RETRY_HOOK
from pinchwire.governance.scheduler import REGISTRATION_KEY
from pinchwire.queue import InMemoryJobQueue
from pinchwire.state import SQLStateStore


def test_name_must_be_non_empty() -> None:
    with pytest.raises(ValueError):
        Pinchwire("  ")


@pytest.mark.asyncio
async def test_install_registers_handlers_cleanup_and_tasks(app_factory) -> None:
    app = app_factory()
    app.task("seo_health")(lambda: [])

    result = await app.install()

    assert result.scheduled == ["seo_health"]
    assert app.queue.has_handler(RETRY_HOOK)
    assert app.queue.has_handler(AUDIT_CLEANUP_HOOK)
    assert app.queue.has_handler("pinchwire_governance_seo_health")
    assert app.queue.recurring_hooks()[AUDIT_CLEANUP_HOOK] == 7 * 86400

    await app.install()
    assert len(app.queue.jobs(AUDIT_CLEANUP_HOOK)) == 1


@pytest.mark.asyncio
async def test_task_registered_after_install_gets_a_handler(app_factory) -> None:
    app = app_factory()
    await app.install()

    @app.task("tide_report")
    def tide_report() -> list:
        return []

    assert app.queue.has_handler("pinchwire_governance_tide_report")


@pytest.mark.asyncio
async def test_reset_circuit_is_audited(app_factory) -> None:
    app = app_factory()
    for _ in range(3):
        await app.breaker.record_failure()

    await app.reset_circuit(actor="ops")

    status = await app.circuit_status()
    assert status["state"] == "closed"
    entry = app.ledger.all_entries()[-1]
    assert entry.event_type == "circuit_reset"
    assert entry.source == "admin"
    assert entry.context == {"previous_state": "open", "previous_failures": 3, "actor": "ops"}


@pytest.mark.asyncio
async def test_uninstall_removes_jobs_state_and_audit(app_factory, gateway) -> None:
    app = app_factory()
    app.task("seo_health")(lambda: [])
    await app.install()
    gateway.queue(500)
    await app.dispatch("test", "x")

    summary = await app.uninstall()

    assert "seo_health" in summary["unscheduled_tasks"]
    assert summary["audit_entries_removed"] == 1
    assert app.queue.jobs() == []
    assert app.state_store.keys() == []
    assert app.ledger.all_entries() == []


@pytest.mark.asyncio
async def test_apply_config_reaches_components(app_factory, config_factory, gateway) -> None:
    app = app_factory()
    app.apply_config(config_factory(gateway={"url": None}, audit={"retention_days": 7}))

    assert app.dispatcher.is_configured is False
    assert app.ledger.retention_days == 7
    assert await app.dispatch("test", "x") is False
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_apply_config_reaches_rate_limiter(app_factory, config_factory, gateway) -> None:
    app = app_factory()
    assert app.rate_limiter.enabled is True

    app.apply_config(config_factory(delivery={"rate_limit": 1}))
    assert await app.dispatch("test", "one") is True
    assert await app.dispatch("test", "two") is False
    assert (await app.rate_limiter.status())["count"] == 1
    assert len(gateway.requests) == 1


@pytest.mark.asyncio
async def test_ensure_tasks_scheduled_registers_handlers_first(app_factory) -> None:
    app = app_factory()
    app.task("seo_health")(lambda: [])

    await app.ensure_tasks_scheduled()

    assert app.health_status()["handlers_registered"] is True
    assert app.queue.has_handler("pinchwire_governance_seo_health")


class _WorkerQueue(InMemoryJobQueue):
    def __init__(self) -> None:
        super().__init__()
        self.worker_hooks: list[str] | None = None

    def start_worker(self) -> None:
        self.worker_hooks = [hook for hook in (RETRY_HOOK, AUDIT_CLEANUP_HOOK) if self.has_handler(hook)]


def test_start_worker_registers_handlers_and_runs_queue_worker(app_factory) -> None:
    queue = _WorkerQueue()
    app = app_factory(queue=queue)

    app.start_worker()

    assert queue.worker_hooks == [RETRY_HOOK, AUDIT_CLEANUP_HOOK]


def test_start_worker_needs_an_out_of_process_queue(app_factory) -> None:
    app = app_factory()
    with pytest.raises(RuntimeError, match="InMemoryJobQueue has no worker"):
        app.start_worker()


def test_health_status(app_factory) -> None:
    app = app_factory()
    app.task("seo_health")(lambda: [])
    assert app.health_status() == {
        "app": "test-app",
        "gateway_configured": True,
        "tasks_registered": 1,
        "handlers_registered": False,
        "storage": "memory",
    }


@pytest.mark.asyncio
async def test_from_config_with_database_uses_sql_components(tmp_path: Path) -> None:
    cfg_path = tmp_path / "pinchwire.yaml"
    cfg_path.write_text(
        f"database:\n  url: sqlite:///{tmp_path / 'app.db'}\ngateway:\n  url: https://gw\n  token: t\n",
        encoding="utf-8",
    )
    app = Pinchwire.from_config("site", config_path=str(cfg_path))
    try:
        assert isinstance(app.ledger, AuditLedger)
        assert isinstance(app.state_store, SQLStateStore)
        assert isinstance(app.queue, InMemoryJobQueue)
        await app.create_tables()
        app.task("seo_health")(lambda: [])
        await app.install()
        stored = await app.state_store.get(REGISTRATION_KEY)
        assert stored["registered"] == {"seo_health": 86400}
        assert app.health_status()["storage"] == "sql"
    finally:
        await app.close()


@pytest.mark.asyncio
async def test_from_config_reload_pushes_into_app(tmp_path: Path) -> None:
    cfg_path = tmp_path / "pinchwire.yaml"
    cfg_path.write_text("gateway:\n  url: https://gw\n  token: t\n", encoding="utf-8")
    app = Pinchwire.from_config(config_path=str(cfg_path))
    assert app.dispatcher.is_configured is True

    cfg_path.write_text("gateway:\n  url: https://gw\n", encoding="utf-8")
    ConfigManager.instance().reload()

    assert app.dispatcher.is_configured is False
    with pytest.raises(RuntimeError):
        await app.create_tables()
