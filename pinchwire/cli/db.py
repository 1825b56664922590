"""``pinchwire db``: schema migrations."""

from __future__ import annotations

import os

import typer
from alembic import command
from alembic.config import Config

from pinchwire.db.engine import DATABASE_URL_ENV

db_app = typer.Typer(name="db", help="Database operations.")


@db_app.command("migrate")
def migrate_command(
    target: str = typer.Option("head", "--target", "-t", help="Revision to upgrade to (default: head)."),
    database_url: str = typer.Option("", "--database-url", help=f"Database URL (default: {DATABASE_URL_ENV})."),
    alembic_ini: str = typer.Option("alembic.ini", "--alembic-ini", help="Path to alembic.ini."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show current and head revisions without applying."),
) -> None:
    """Run schema migrations (Alembic upgrade)."""
    normalized_target = target.strip()
    if not normalized_target:
        typer.echo("Error: --target must be a non-empty revision string.", err=True)
        raise typer.Exit(2)
    url = (database_url or os.environ.get(DATABASE_URL_ENV, "")).strip()
    if not url:
        typer.echo(f"Error: Set {DATABASE_URL_ENV} or pass --database-url.", err=True)
        raise typer.Exit(2)
    if database_url:
        os.environ[DATABASE_URL_ENV] = url
    alembic_cfg = Config(alembic_ini)
    if dry_run:
        command.current(alembic_cfg)
        command.heads(alembic_cfg)
        typer.echo("--dry-run: run without --dry-run to apply migrations.")
        return
    command.upgrade(alembic_cfg, normalized_target)
    typer.echo("Migrations applied.")
