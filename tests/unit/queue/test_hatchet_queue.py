"""Unit tests for the Hatchet-backed job queue (config, cron mapping, SDK calls mocked)."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from pinchwire.errors import JobQueueError
from pinchwire.queue.hatchet import (
    HatchetClient,
    HatchetConfig,
    HatchetJobQueue,
    _server_url_to_host_port,
    _substitute_env_dict,
    interval_to_cron,
)


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (60, "*/1 * * * *"),
        (900, "*/15 * * * *"),
        (3600, "0 * * * *"),
        (6 * 3600, "0 */6 * * *"),
        (86400, "0 0 * * *"),
        (3 * 86400, "0 0 */3 * *"),
        (7 * 86400, "0 0 * * 0"),
    ],
)
def test_interval_to_cron(seconds: int, expected: str) -> None:
    assert interval_to_cron(seconds) == expected


@pytest.mark.parametrize("seconds", [30, 90, 7 * 3600, 40 * 86400, 0])
def test_interval_to_cron_rejects_unrepresentable(seconds: int) -> None:
    with pytest.raises(ValueError):
        interval_to_cron(seconds)


def test_hatchet_config_defaults_and_validation(monkeypatch) -> None:
    monkeypatch.delenv("HATCHET_SERVER_URL", raising=False)
    config = HatchetConfig()
    assert config.server_url == "http://localhost:7077"
    assert config.namespace == "pinchwire"
    with pytest.raises(ValueError, match="server_url"):
        HatchetConfig(server_url="not-a-url")
    with pytest.raises(ValueError):
        HatchetConfig(max_concurrent_tasks=0)


def test_hatchet_config_from_yaml_env_substitution(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("HATCHET_NS", "from-env")
    config_file = tmp_path / "pinchwire.yaml"
    config_file.write_text(
        "hatchet:\n  enabled: true\n  server_url: https://hatchet:7077/\n  namespace: ${HATCHET_NS}\n",
        encoding="utf-8",
    )
    config = HatchetConfig.from_yaml(config_file)
    assert config.server_url == "https://hatchet:7077"
    assert config.namespace == "from-env"
    assert _substitute_env_dict({"a": {"b": "$HATCHET_NS"}}) == {"a": {"b": "from-env"}}


def test_server_url_to_host_port() -> None:
    assert _server_url_to_host_port("http://hatchet:7077") == "hatchet:7077"
    assert _server_url_to_host_port("https://hatchet.example.com/api") == "hatchet.example.com:7077"


def test_connect_requires_token(monkeypatch) -> None:
    monkeypatch.delenv("HATCHET_API_TOKEN", raising=False)
    with pytest.raises(ValueError, match="token"):
        HatchetClient(HatchetConfig()).connect()


def _connected_client() -> tuple[HatchetClient, MagicMock]:
    sdk = MagicMock()
    sdk.task.return_value = lambda func: SimpleNamespace(name=func.__name__)
    sdk.cron.aio.create = AsyncMock(return_value=SimpleNamespace(metadata=SimpleNamespace(id="cron-1")))
    sdk.scheduled.aio.create = AsyncMock(return_value=SimpleNamespace(metadata=SimpleNamespace(id="run-1")))
    sdk.cron.aio.list = AsyncMock(return_value=SimpleNamespace(rows=[SimpleNamespace(metadata=SimpleNamespace(id="c1"))]))
    sdk.cron.aio.delete = AsyncMock()
    sdk.scheduled.aio.list = AsyncMock(
        return_value=SimpleNamespace(
            rows=[SimpleNamespace(metadata=SimpleNamespace(id="s1")), SimpleNamespace(metadata=SimpleNamespace(id="s2"))]
        )
    )
    sdk.scheduled.aio.delete = AsyncMock()
    client = HatchetClient(HatchetConfig(api_token="token"))
    client._hatchet = sdk
    return client, sdk


@pytest.mark.asyncio
async def test_job_queue_maps_operations_to_hatchet() -> None:
    client, sdk = _connected_client()
    queue = HatchetJobQueue(client)
    queue.register_handler("pinchwire_governance_seo_health", lambda args: None)
    queue.register_handler("pinchwire_retry_webhook", lambda args: None)

    cron_id = await queue.schedule_recurring("pinchwire_governance_seo_health", 86400, {"task": "seo_health"})
    run_at = datetime(2026, 3, 1, 12, 5)
    run_id = await queue.schedule_once_at("pinchwire_retry_webhook", run_at, {"attempt": 0})
    removed = await queue.unschedule_all("pinchwire_retry_webhook")

    assert (cron_id, run_id, removed) == ("cron-1", "run-1", 3)
    cron_kwargs = sdk.cron.aio.create.await_args.kwargs
    assert cron_kwargs["expression"] == "0 0 * * *"
    assert cron_kwargs["input"] == {"task": "seo_health"}
    assert cron_kwargs["additional_metadata"] == {"pinchwire_hook": "pinchwire_governance_seo_health"}
    scheduled_kwargs = sdk.scheduled.aio.create.await_args.kwargs
    assert scheduled_kwargs["trigger_at"] == run_at.replace(tzinfo=timezone.utc)
    sdk.cron.aio.list.assert_awaited_once_with(additional_metadata={"pinchwire_hook": "pinchwire_retry_webhook"})
    assert sdk.scheduled.aio.delete.await_count == 2


@pytest.mark.asyncio
async def test_registered_handler_receives_task_input() -> None:
    client, sdk = _connected_client()
    captured: list = []
    sdk.task.return_value = lambda func: captured.append(func) or func
    seen: list[dict] = []

    async def _handler(args: dict) -> str:
        seen.append(args)
        return "ok"

    HatchetJobQueue(client).register_handler("pinchwire_audit_cleanup", _handler)

    assert await captured[0]({"removed": 0}, object()) == "ok"
    assert seen == [{"removed": 0}]
    assert sdk.task.call_args.kwargs["name"] == "pinchwire_audit_cleanup"


@pytest.mark.asyncio
async def test_sdk_errors_become_job_queue_errors() -> None:
    client, sdk = _connected_client()
    HatchetJobQueue(client).register_handler("pinchwire_retry_webhook", lambda args: None)
    sdk.scheduled.aio.create = AsyncMock(side_effect=RuntimeError("grpc unavailable"))

    with pytest.raises(JobQueueError, match="grpc unavailable"):
        await HatchetJobQueue(client).schedule_once_at(
            "pinchwire_retry_webhook", datetime(2026, 3, 1, tzinfo=timezone.utc), {}
        )


@pytest.mark.asyncio
async def test_scheduling_unregistered_hook_is_rejected() -> None:
    client, _ = _connected_client()
    with pytest.raises(ValueError, match="not registered"):
        await HatchetJobQueue(client).schedule_recurring("pinchwire_governance_tide_report", 86400)


def test_check_recurring_validates_interval_and_registration() -> None:
    client, _ = _connected_client()
    queue = HatchetJobQueue(client)
    with pytest.raises(ValueError, match="not registered"):
        queue.check_recurring("pinchwire_governance_seo_health", 86400)

    queue.register_handler("pinchwire_governance_seo_health", lambda args: None)
    queue.check_recurring("pinchwire_governance_seo_health", 86400)
    with pytest.raises(ValueError):
        queue.check_recurring("pinchwire_governance_seo_health", 7 * 3600)


def test_start_worker_runs_sdk_worker_with_registered_tasks() -> None:
    client, sdk = _connected_client()
    queue = HatchetJobQueue(client)
    with pytest.raises(RuntimeError, match="register_handlers"):
        queue.start_worker()

    queue.register_handler("pinchwire_retry_webhook", lambda args: None)
    queue.start_worker()

    kwargs = sdk.worker.call_args.kwargs
    assert [workflow.name for workflow in kwargs["workflows"]] == ["pinchwire_retry_webhook"]
    sdk.worker.return_value.start.assert_called_once_with()


def _hatchet_app(app_factory, sdk: MagicMock, state_store, config=None):
    client = HatchetClient(HatchetConfig(api_token="token"))
    client._hatchet = sdk
    app = app_factory(config, queue=HatchetJobQueue(client), state_store=state_store)
    app.task("seo_health")(lambda: [])
    return app


@pytest.mark.asyncio
async def test_resync_from_fresh_process_registers_handlers_before_rescheduling(
    app_factory, config_factory
) -> None:
    from pinchwire.state import InMemoryStateStore

    _, sdk = _connected_client()
    store = InMemoryStateStore()
    await _hatchet_app(app_factory, sdk, store).install()
    sdk.reset_mock()

    resynced = _hatchet_app(app_factory, sdk, store, config_factory(governance={"intervals": {"seo_health": 3600}}))
    result = await resynced.ensure_tasks_scheduled()

    assert result.error is None
    assert result.scheduled == ["seo_health"]
    assert sdk.cron.aio.create.await_args.kwargs["expression"] == "0 * * * *"
    assert await resynced.scheduler.registered_tasks() == {"seo_health": 3600}


@pytest.mark.asyncio
async def test_rejected_interval_keeps_the_live_trigger(app_factory, config_factory) -> None:
    from pinchwire.state import InMemoryStateStore

    _, sdk = _connected_client()
    app = _hatchet_app(app_factory, sdk, InMemoryStateStore())
    await app.install()
    sdk.reset_mock()

    app.apply_config(config_factory(governance={"intervals": {"seo_health": 7 * 3600}}))
    result = await app.ensure_tasks_scheduled()

    assert result.error is not None
    sdk.cron.aio.delete.assert_not_awaited()
    sdk.cron.aio.create.assert_not_awaited()
    assert await app.scheduler.registered_tasks() == {"seo_health": 86400}
    assert [entry.event_type for entry in app.ledger.all_entries()] == ["scheduler_error"]
