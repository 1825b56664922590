"""Unit tests for pinchwire.db engine and session factory."""

from __future__ import annotations

import pytest
from sqlalchemy import text

from pinchwire.db import ConfigurationError, DatabaseError, create_engine, create_session_factory
from pinchwire.db.engine import _normalize_url
from pinchwire.errors import PinchwireError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgresql://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
        ("postgresql+asyncpg://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
        ("sqlite:///tmp/x.db", "sqlite+aiosqlite:///tmp/x.db"),
        (" sqlite+aiosqlite:///tmp/x.db ", "sqlite+aiosqlite:///tmp/x.db"),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert _normalize_url(raw) == expected


def test_unsupported_or_missing_url_raises() -> None:
    with pytest.raises(ConfigurationError, match="PostgreSQL"):
        _normalize_url("mysql://u:p@host/db")
    with pytest.raises(ConfigurationError, match="PINCHWIRE_DATABASE_URL"):
        create_engine()
    assert issubclass(ConfigurationError, DatabaseError)
    assert issubclass(DatabaseError, PinchwireError)


@pytest.mark.asyncio
async def test_engine_from_env_and_session_transactions(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PINCHWIRE_DATABASE_URL", f"sqlite:///{tmp_path / 'tx.db'}")
    engine = create_engine()
    factory = create_session_factory(engine)
    try:
        assert engine.url.drivername == "sqlite+aiosqlite"
        async with factory() as session, session.begin():
            await session.execute(text("CREATE TABLE t (v INTEGER)"))
            await session.execute(text("INSERT INTO t VALUES (1)"))
        with pytest.raises(RuntimeError):
            async with factory() as session, session.begin():
                await session.execute(text("INSERT INTO t VALUES (2)"))
                raise RuntimeError("boom")
        async with factory() as session:
            assert (await session.execute(text("SELECT COUNT(*) FROM t"))).scalar_one() == 1
    finally:
        await engine.dispose()
