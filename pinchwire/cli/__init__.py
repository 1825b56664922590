"""CLI tools: pinchwire init, reload, worker, webhook, governance, audit, circuit, db."""

from __future__ import annotations

import logging
import sys
from importlib import metadata

import typer

from pinchwire.cli._app import load_app
from pinchwire.cli.audit import audit_app
from pinchwire.cli.circuit import circuit_app
from pinchwire.cli.db import db_app
from pinchwire.cli.governance import governance_app
from pinchwire.cli.init_config import init_config_command
from pinchwire.cli.reload_config import reload_config_command
from pinchwire.cli.webhook import webhook_app

app = typer.Typer(
    name="pinchwire",
    help="Pinchwire: site governance findings and resilient gateway delivery.",
    no_args_is_help=True,
)

app.add_typer(audit_app, name="audit")
app.add_typer(circuit_app, name="circuit")
app.add_typer(db_app, name="db")
app.add_typer(governance_app, name="governance")
app.add_typer(webhook_app, name="webhook")


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("pinchwire")
    except metadata.PackageNotFoundError:
        from pinchwire import __version__ as version
    typer.echo(f"pinchwire {version}")
    raise typer.Exit(0)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing pinchwire.yaml"),
) -> None:
    """Generate default pinchwire.yaml in target directory."""
    try:
        init_config_command(path=path, force=force)
    except FileExistsError as exc:
        typer.echo(f"Error: {exc}. Use --force to overwrite.", err=True)
        raise typer.Exit(1) from exc


@app.command("reload")
def reload_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute; resyncs task registration."),
) -> None:
    """Reload configuration and print applied/skipped changes."""
    reload_config_command(config=config or None, app_ref=app_ref or None)


@app.command("worker")
def worker_command(
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute (or $PINCHWIRE_APP)."),
    config: str = typer.Option("", "--config", help="Optional config file path"),
) -> None:
    """Register job handlers and run the queue worker until interrupted."""
    application = load_app(app_ref or None, config or None)
    try:
        application.start_worker()
    except RuntimeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
