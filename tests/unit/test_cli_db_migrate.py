"""Tests for ``pinchwire db migrate`` against a throwaway SQLite database."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from typer.testing import CliRunner

from pinchwire.audit import AuditLedger
from pinchwire.cli import app as cli_app

runner = CliRunner()
ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _migrate(db_path: Path, *extra: str):
    return runner.invoke(
        cli_app,
        [
            "db",
            "migrate",
            "--database-url",
            f"sqlite+aiosqlite:///{db_path}",
            "--alembic-ini",
            str(ALEMBIC_INI),
            *extra,
        ],
    )


def test_migrate_creates_pinchwire_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "migrated.db"

    result = _migrate(db_path)

    assert result.exit_code == 0, result.output
    assert "Migrations applied." in result.output
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        assert {"pinchwire_audit_log", "pinchwire_state", "alembic_version"} <= set(inspector.get_table_names())
        index_names = {index["name"] for index in inspector.get_indexes("pinchwire_audit_log")}
        assert "idx_pinchwire_audit_type_created" in index_names
    finally:
        engine.dispose()


def test_migrate_rejects_blank_target(tmp_path: Path) -> None:
    result = _migrate(tmp_path / "x.db", "--target", " ")
    assert result.exit_code == 2


@pytest.mark.asyncio
async def test_migrated_schema_serves_the_sql_ledger(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    assert _migrate(db_path).exit_code == 0
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    try:
        ledger = AuditLedger(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
        entry_id = await ledger.insert("webhook_sent", "webhook", "ok", {"user_id": 3})
        page = await ledger.query()
        assert page.items[0].id == entry_id
        assert page.items[0].user_id == "3"
    finally:
        await engine.dispose()
