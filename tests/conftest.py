"""Shared test fixtures and collection-time service gating for Pinchwire."""

from __future__ import annotations

import os
import socket
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pinchwire import Pinchwire
from pinchwire.config import ConfigManager, PinchwireConfig
from pinchwire.db import Base

# Load .env from repo root so HATCHET_API_TOKEN etc. are set for integration runs
_env_file = Path(__file__).resolve().parent.parent / ".env"
if _env_file.exists():
    import dotenv

    dotenv.load_dotenv(_env_file)

GATEWAY_URL = "https://gateway.example.test"
GATEWAY_TOKEN = "test-token"


def _is_port_open(host: str, port: int, timeout: float = 0.5) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        return sock.connect_ex((host, port)) == 0


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip tests marked ``requires_hatchet`` when no Hatchet server is reachable."""
    parsed = urlparse(os.getenv("HATCHET_SERVER_URL", "http://localhost:7077"))
    host, port = parsed.hostname or "localhost", parsed.port or 7077
    if _is_port_open(host, port):
        return
    skip = pytest.mark.skip(reason=f"Hatchet is not available on {host}:{port}")
    for item in items:
        if "requires_hatchet" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the config singleton and PINCHWIRE_* env from leaking between tests."""
    for key in list(os.environ):
        if key.startswith("PINCHWIRE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    ConfigManager._reset_for_tests()


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()


class GatewayStub:
    """Scripted gateway behind ``httpx.MockTransport``; records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response | Exception] = []

    def queue(self, *responses: int | httpx.Response | Exception) -> None:
        for item in responses:
            self._responses.append(httpx.Response(item) if isinstance(item, int) else item)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if self._responses else httpx.Response(200)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def gateway() -> GatewayStub:
    return GatewayStub()


def make_config(**sections: dict[str, Any]) -> PinchwireConfig:
    data: dict[str, Any] = {"gateway": {"url": GATEWAY_URL, "token": GATEWAY_TOKEN, "site_name": "Test Site"}}
    for name, values in sections.items():
        data[name] = {**data.get(name, {}), **values}
    return PinchwireConfig.model_validate(data)


@pytest.fixture
def app_factory(clock: FrozenClock, gateway: GatewayStub) -> Callable[..., Pinchwire]:
    """Build an in-memory app wired to the frozen clock and the gateway stub."""

    def _make(config: PinchwireConfig | None = None, **kwargs: Any) -> Pinchwire:
        kwargs.setdefault("transport", gateway.transport)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("version", "1.0.0")
        return Pinchwire("test-app", config=config or make_config(), **kwargs)

    return _make


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """SQLite-backed session factory with every Pinchwire table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pinchwire.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def config_factory() -> Callable[..., PinchwireConfig]:
    return make_config
