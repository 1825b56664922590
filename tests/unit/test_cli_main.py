"""CLI tests for the pinchwire command tree."""

from __future__ import annotations

import asyncio
import csv
import io
import json
import sys
import types
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pinchwire.cli import app as cli_app
from pinchwire.config import YAMLConfigLoader

runner = CliRunner()
APP_MODULE = "pinchwire_cli_test_app"


@pytest.fixture
def host_app(app_factory, monkeypatch):
    """Expose an in-memory app as ``pinchwire_cli_test_app:app`` for ``--app``."""
    application = app_factory()

    @application.task("seo_health")
    def seo_health() -> list[dict]:
        return [{"severity": "warning", "summary": "Missing meta description"}]

    module = types.ModuleType(APP_MODULE)
    module.app = application  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, APP_MODULE, module)
    return application


def _invoke(*args: str):
    return runner.invoke(cli_app, list(args))


def test_version_flag() -> None:
    result = _invoke("--version")
    assert result.exit_code == 0
    assert result.output.startswith("pinchwire ")


def test_init_writes_default_config(tmp_path: Path) -> None:
    result = _invoke("init", "--path", str(tmp_path))
    assert result.exit_code == 0
    data = YAMLConfigLoader.load_dict(tmp_path / "pinchwire.yaml")
    assert data["gateway"]["channel"] == "pinchwire"
    assert data["audit"]["retention_days"] == 90

    again = _invoke("init", "--path", str(tmp_path))
    assert again.exit_code == 1
    assert _invoke("init", "--path", str(tmp_path), "--force").exit_code == 0


def test_reload_reports_applied_and_skipped(tmp_path: Path) -> None:
    from pinchwire.config import ConfigManager

    cfg_path = tmp_path / "pinchwire.yaml"
    cfg_path.write_text("gateway:\n  channel: one\n", encoding="utf-8")
    ConfigManager.load(config_path=str(cfg_path))
    cfg_path.write_text("gateway:\n  channel: two\ndatabase:\n  echo: true\n", encoding="utf-8")

    result = _invoke("reload", "--config", str(cfg_path))

    assert result.exit_code == 0
    assert "gateway.channel" in result.output
    assert "database.echo" in result.output
    assert ConfigManager.instance().get().gateway.channel == "two"


def test_reload_with_app_resyncs_task_registration(tmp_path: Path, host_app) -> None:
    from pinchwire.config import ConfigManager

    cfg_path = tmp_path / "pinchwire.yaml"
    cfg_path.write_text("governance:\n  intervals: {}\n", encoding="utf-8")
    ConfigManager.load(config_path=str(cfg_path))
    cfg_path.write_text("governance:\n  intervals:\n    seo_health: 3600\n", encoding="utf-8")

    result = _invoke("reload", "--config", str(cfg_path), "--app", f"{APP_MODULE}:app")

    assert result.exit_code == 0
    assert "seo_health" in result.output
    assert host_app.queue.recurring_hooks() == {"pinchwire_governance_seo_health": 3600}


def test_governance_list_and_run(host_app, gateway) -> None:
    listed = _invoke("governance", "list", "--app", f"{APP_MODULE}:app")
    assert listed.exit_code == 0
    assert "seo_health" in listed.output

    ran = _invoke("governance", "run", "seo_health", "--app", f"{APP_MODULE}:app")
    assert ran.exit_code == 0
    assert "delivered" in ran.output
    assert len(gateway.requests) == 1

    missing = _invoke("governance", "run", "--app", f"{APP_MODULE}:app")
    assert missing.exit_code == 2

    unknown = _invoke("governance", "run", "not_a_task", "--app", f"{APP_MODULE}:app")
    assert unknown.exit_code == 2

    everything = _invoke("governance", "run", "--all", "--app", f"{APP_MODULE}:app")
    assert everything.exit_code == 0


def test_audit_list_export_purge_and_erase(host_app, tmp_path: Path) -> None:
    async def _seed() -> None:
        await host_app.ledger.insert("webhook_sent", "webhook", "Delivered test", {"user_id": 9})
        await host_app.ledger.insert("governance_finding", "governance", "1 finding")

    asyncio.run(_seed())

    listed = _invoke("audit", "list", "--json", "--source", "webhook", "--app", f"{APP_MODULE}:app")
    assert listed.exit_code == 0
    payload = json.loads(listed.output)
    assert payload["total"] == 1
    assert payload["items"][0]["message"] == "Delivered test"

    bad_date = _invoke("audit", "list", "--since", "yesterday", "--app", f"{APP_MODULE}:app")
    assert bad_date.exit_code == 2

    out = tmp_path / "audit.csv"
    exported = _invoke("audit", "export", "--output", str(out), "--app", f"{APP_MODULE}:app")
    assert exported.exit_code == 0
    rows = list(csv.reader(io.StringIO(out.read_text(encoding="utf-8"))))
    assert len(rows) == 3

    purged = _invoke("audit", "purge", "--app", f"{APP_MODULE}:app")
    assert purged.exit_code == 0
    assert "Removed 0" in purged.output

    erased = _invoke("audit", "erase-user", "9", "--app", f"{APP_MODULE}:app")
    assert erased.exit_code == 0
    assert "Removed 1" in erased.output
    assert [e.message for e in host_app.ledger.all_entries()] == ["1 finding"]


def test_circuit_status_and_reset(host_app) -> None:
    async def _trip() -> None:
        for _ in range(3):
            await host_app.breaker.record_failure()

    asyncio.run(_trip())

    status = _invoke("circuit", "status", "--app", f"{APP_MODULE}:app")
    assert status.exit_code == 0
    assert json.loads(status.output)["state"] == "open"

    reset = _invoke("circuit", "reset", "--app", f"{APP_MODULE}:app")
    assert reset.exit_code == 0
    assert host_app.ledger.all_entries()[-1].context["actor"] == "cli"


def test_webhook_test_command(host_app, gateway, config_factory) -> None:
    sent = _invoke("webhook", "test", "--app", f"{APP_MODULE}:app")
    assert sent.exit_code == 0
    assert json.loads(gateway.requests[0].content)["metadata"]["event"] == "test"

    gateway.queue(500)
    failed = _invoke("webhook", "test", "--app", f"{APP_MODULE}:app")
    assert failed.exit_code == 1

    host_app.apply_config(config_factory(gateway={"token": None}))
    unconfigured = _invoke("webhook", "test", "--app", f"{APP_MODULE}:app")
    assert unconfigured.exit_code == 1
    assert len(gateway.requests) == 2


def test_bad_app_reference_is_rejected(monkeypatch) -> None:
    module = types.ModuleType("pinchwire_cli_not_an_app")
    module.app = object()  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, "pinchwire_cli_not_an_app", module)
    assert _invoke("circuit", "status", "--app", "pinchwire_cli_not_an_app:app").exit_code == 2
    assert _invoke("circuit", "status", "--app", "no_such_module_xyz:app").exit_code == 2


def test_default_app_is_built_from_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "pinchwire.yaml"
    cfg_path.write_text("gateway:\n  channel: ops\n", encoding="utf-8")
    result = _invoke("circuit", "status", "--config", str(cfg_path))
    assert result.exit_code == 0
    assert json.loads(result.output)["state"] == "closed"


def test_db_migrate_requires_database_url() -> None:
    result = _invoke("db", "migrate")
    assert result.exit_code == 2
    assert "PINCHWIRE_DATABASE_URL" in result.output


def test_worker_without_out_of_process_queue_fails(host_app) -> None:
    result = _invoke("worker", "--app", f"{APP_MODULE}:app")
    assert result.exit_code == 1
    assert "Error" in result.output
    assert host_app.queue.has_handler("pinchwire_governance_seo_health")


def test_worker_registers_handlers_then_runs_queue_worker(host_app, monkeypatch) -> None:
    started: list[list[str]] = []
    hooks = ["pinchwire_governance_seo_health", "pinchwire_audit_cleanup", "pinchwire_retry_webhook"]

    def _start_worker() -> None:
        started.append([name for name in hooks if host_app.queue.has_handler(name)])

    monkeypatch.setattr(host_app.queue, "start_worker", _start_worker, raising=False)

    result = _invoke("worker", "--app", f"{APP_MODULE}:app")

    assert result.exit_code == 0
    assert started == [hooks]
