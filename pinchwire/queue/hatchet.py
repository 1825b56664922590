"""
Hatchet integration: the durable job queue behind a production deployment.

All Hatchet SDK usage is isolated in this module. Pinchwire code only sees
HatchetConfig, HatchetClient and HatchetJobQueue.
"""

from __future__ import annotations

import inspect
import logging
import os
import re
import signal
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from croniter import croniter
from pydantic import BaseModel, field_validator, model_validator

from pinchwire.errors import JobQueueError
from pinchwire.queue.base import JobHandler

logger = logging.getLogger(__name__)

HOOK_METADATA_KEY = "pinchwire_hook"


# Lazy import to avoid loading hatchet_sdk when running with the in-memory queue
def _get_hatchet():
    from hatchet_sdk import Hatchet
    from hatchet_sdk.config import ClientConfig, ClientTLSConfig

    return Hatchet, ClientConfig, ClientTLSConfig


def _substitute_env(value: str) -> str:
    """Replace ${VAR} and $VAR with environment variable values."""
    pattern = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

    def repl(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return os.environ.get(name, "")

    return pattern.sub(repl, value)


def _substitute_env_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${VAR} in string values."""
    out: dict[str, Any] = {}
    for k, v in data.items():
        if isinstance(v, dict):
            out[k] = _substitute_env_dict(v)
        elif isinstance(v, str):
            out[k] = _substitute_env(v)
        else:
            out[k] = v
    return out


class HatchetConfig(BaseModel):
    """Hatchet connection and worker configuration."""

    server_url: str = "http://localhost:7077"
    api_token: str | None = None
    grpc_host_port: str | None = None
    grpc_tls_strategy: str = "tls"
    namespace: str = "pinchwire"
    max_concurrent_tasks: int = 10
    worker_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def server_url_from_env(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("server_url"):
            url = os.environ.get("HATCHET_SERVER_URL", "").strip()
            if url:
                data = {**data, "server_url": url}
        return data

    @field_validator("server_url")
    @classmethod
    def server_url_format(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("grpc_tls_strategy")
    @classmethod
    def grpc_tls_strategy_not_empty(cls, v: str) -> str:
        value = v.strip().lower()
        if not value:
            raise ValueError("grpc_tls_strategy cannot be empty")
        return value

    @field_validator("max_concurrent_tasks")
    @classmethod
    def max_concurrent_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_tasks must be >= 1")
        return v

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> HatchetConfig:
        """Load configuration from pinchwire.yaml (hatchet section)."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        hatchet_data = dict(data.get("hatchet", {}) or {})
        hatchet_data.pop("enabled", None)
        return cls.model_validate(_substitute_env_dict(hatchet_data))


def _server_url_to_host_port(server_url: str) -> str:
    """Convert http://host:port to host:port."""
    rest = server_url.split("://", 1)[-1]
    if "/" in rest:
        rest = rest.split("/", 1)[0]
    return rest if ":" in rest else f"{rest}:7077"


def interval_to_cron(interval_seconds: int) -> str:
    """Express a fixed interval as a cron expression.

    Supported: minute steps dividing an hour, hour steps dividing a day,
    whole days up to 31, and exactly one week. Anything else raises ``ValueError``.
    """
    seconds = int(interval_seconds)
    if seconds < 60 or seconds % 60:
        raise ValueError(f"interval must be a positive whole number of minutes: {interval_seconds}")
    if seconds == 7 * 86400:
        expression = "0 0 * * 0"
    elif seconds % 86400 == 0 and seconds // 86400 <= 31:
        days = seconds // 86400
        expression = "0 0 * * *" if days == 1 else f"0 0 */{days} * *"
    elif seconds % 3600 == 0 and 24 % (seconds // 3600) == 0 and seconds < 86400:
        hours = seconds // 3600
        expression = "0 * * * *" if hours == 1 else f"0 */{hours} * * *"
    elif seconds < 3600 and 60 % (seconds // 60) == 0:
        expression = f"*/{seconds // 60} * * * *"
    else:
        raise ValueError(f"interval has no cron equivalent: {interval_seconds}")
    if not croniter.is_valid(expression):
        raise ValueError(f"invalid cron expression for interval {interval_seconds}: {expression}")
    return expression


def _rows(result: Any) -> list[Any]:
    if isinstance(result, list):
        return result
    return list(getattr(result, "rows", None) or [])


def _row_id(row: Any) -> str:
    meta = getattr(row, "metadata", None)
    return str(getattr(meta, "id", None) or getattr(row, "id", ""))


class HatchetClient:
    """Pinchwire wrapper around the Hatchet SDK."""

    def __init__(self, config: HatchetConfig) -> None:
        self.config = config
        self._hatchet: Any = None
        self._workflows: dict[str, Any] = {}

    @property
    def connected(self) -> bool:
        return self._hatchet is not None

    def connect(self) -> None:
        """Connect to Hatchet Server."""
        token = self.config.api_token or os.environ.get("HATCHET_API_TOKEN", "")
        if not token:
            raise ValueError(
                "Hatchet API token required: set api_token in config or HATCHET_API_TOKEN"
            )
        hatchet_cls, client_config_cls, client_tls_config_cls = _get_hatchet()
        try:
            grpc_host_port = self.config.grpc_host_port or _server_url_to_host_port(self.config.server_url)
            client_config = client_config_cls(
                host_port=grpc_host_port,
                server_url=self.config.server_url,
                token=token,
                namespace=self.config.namespace,
                tls_config=client_tls_config_cls(strategy=self.config.grpc_tls_strategy),
            )
            self._hatchet = hatchet_cls(config=client_config)
            logger.info("connected to hatchet server_url=%s", self.config.server_url)
        except Exception as e:
            logger.exception("failed to connect to hatchet")
            raise ConnectionError(f"Failed to connect to Hatchet Server: {e}") from e

    def has_task(self, name: str) -> bool:
        return name in self._workflows

    def disconnect(self) -> None:
        """Disconnect from Hatchet Server."""
        if self._hatchet is not None:
            self._hatchet = None
            logger.info("disconnected from hatchet")

    def task(self, name: str, retries: int = 0, timeout: int = 60) -> Callable:
        """Decorator registering a function as a standalone Hatchet task."""

        def decorator(func: Callable) -> Callable:
            if self._hatchet is None:
                raise RuntimeError("Must call connect() before registering tasks")
            task_name = name.strip()
            if not task_name:
                raise ValueError("task name cannot be empty")
            standalone = self._hatchet.task(
                name=task_name,
                retries=retries,
                execution_timeout=timedelta(seconds=timeout),
            )(func)
            self._workflows[task_name] = standalone
            return func

        return decorator

    async def schedule_at(
        self,
        task_name: str,
        run_at: datetime,
        input_data: dict[str, Any],
        *,
        additional_metadata: dict[str, Any] | None = None,
    ) -> str:
        """Schedule one run of a task at ``run_at``. Returns the scheduled run id."""
        if self._hatchet is None:
            raise RuntimeError("Not connected to Hatchet")
        if task_name not in self._workflows:
            raise ValueError(f"Task '{task_name}' not registered")
        try:
            scheduled = await self._hatchet.scheduled.aio.create(
                workflow_name=task_name,
                trigger_at=run_at,
                input=input_data,
                additional_metadata=additional_metadata or {},
            )
        except Exception as e:
            logger.exception("failed to schedule task task=%s", task_name)
            raise JobQueueError(f"Failed to schedule {task_name}: {e}") from e
        return _row_id(scheduled) or f"scheduled-{task_name}"

    async def schedule_cron(
        self,
        workflow_name: str,
        cron_name: str,
        expression: str,
        input_data: dict[str, Any],
        *,
        additional_metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create a cron trigger for a workflow. Returns cron trigger id."""
        if self._hatchet is None:
            raise RuntimeError("Not connected to Hatchet")
        if workflow_name not in self._workflows:
            raise ValueError(f"Workflow '{workflow_name}' not registered")
        try:
            cron_result = await self._hatchet.cron.aio.create(
                workflow_name=workflow_name,
                cron_name=cron_name,
                expression=expression,
                input=input_data,
                additional_metadata=additional_metadata or {},
            )
        except Exception as e:
            logger.exception("failed to create cron trigger workflow=%s", workflow_name)
            raise JobQueueError(f"Failed to create cron trigger for {workflow_name}: {e}") from e
        return _row_id(cron_result) or cron_name

    async def delete_by_metadata(self, metadata: dict[str, str]) -> int:
        """Delete every cron trigger and pending scheduled run tagged with ``metadata``."""
        if self._hatchet is None:
            raise RuntimeError("Not connected to Hatchet")
        removed = 0
        try:
            crons = await self._hatchet.cron.aio.list(additional_metadata=metadata)
            for row in _rows(crons):
                await self._hatchet.cron.aio.delete(cron_id=_row_id(row))
                removed += 1
            scheduled = await self._hatchet.scheduled.aio.list(additional_metadata=metadata)
            for row in _rows(scheduled):
                await self._hatchet.scheduled.aio.delete(scheduled_id=_row_id(row))
                removed += 1
        except Exception as e:
            logger.exception("failed to delete hatchet triggers metadata=%s", metadata)
            raise JobQueueError(f"Failed to delete triggers for {metadata}: {e}") from e
        return removed

    def start_worker(self) -> None:
        """Start the Hatchet worker (blocking)."""
        if self._hatchet is None:
            raise RuntimeError("Must call connect() before start_worker()")
        if not hasattr(signal, "SIGQUIT"):
            # Hatchet SDK expects SIGQUIT on POSIX; map to SIGTERM for Windows.
            signal.SIGQUIT = signal.SIGTERM  # type: ignore[attr-defined,misc]
        workflows = list(self._workflows.values())
        if not workflows:
            raise RuntimeError("No handlers registered; call register_handlers() before starting a worker")
        worker = self._hatchet.worker(
            name=self.config.worker_name or f"pinchwire-worker-{os.getpid()}",
            slots=self.config.max_concurrent_tasks,
            workflows=workflows,
        )
        worker.start()


class HatchetJobQueue:
    """``JobQueue`` backed by Hatchet tasks, cron triggers and scheduled runs.

    Every trigger is tagged with the hook name in its additional metadata so
    ``unschedule_all`` can find it again after a restart.
    """

    def __init__(self, client: HatchetClient) -> None:
        self._client = client

    def register_handler(self, hook_name: str, handler: JobHandler) -> None:
        async def _run(input: Any, ctx: Any) -> Any:
            args = input.model_dump() if hasattr(input, "model_dump") else dict(input or {})
            result = handler(args)
            if inspect.isawaitable(result):
                result = await result
            return result

        _run.__name__ = hook_name
        self._client.task(name=hook_name)(_run)

    def check_recurring(self, hook_name: str, interval_seconds: int) -> None:
        interval_to_cron(interval_seconds)
        if not self._client.has_task(hook_name):
            raise ValueError(f"Workflow '{hook_name}' not registered")

    def start_worker(self) -> None:
        """Run the Hatchet worker for every registered handler (blocking)."""
        self._client.start_worker()

    async def schedule_recurring(
        self,
        hook_name: str,
        interval_seconds: int,
        args: dict[str, Any] | None = None,
    ) -> str:
        expression = interval_to_cron(interval_seconds)
        return await self._client.schedule_cron(
            hook_name,
            f"{hook_name}-{interval_seconds}",
            expression,
            args or {},
            additional_metadata={HOOK_METADATA_KEY: hook_name},
        )

    async def schedule_once_at(
        self,
        hook_name: str,
        run_at: datetime,
        args: dict[str, Any] | None = None,
    ) -> str:
        if run_at.tzinfo is None:
            run_at = run_at.replace(tzinfo=timezone.utc)
        return await self._client.schedule_at(
            hook_name,
            run_at,
            args or {},
            additional_metadata={HOOK_METADATA_KEY: hook_name},
        )

    async def unschedule_all(self, hook_name: str) -> int:
        removed = await self._client.delete_by_metadata({HOOK_METADATA_KEY: hook_name})
        logger.debug("hatchet triggers removed hook=%s removed=%d", hook_name, removed)
        return removed
