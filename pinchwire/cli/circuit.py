"""``pinchwire circuit``: circuit breaker status and manual reset."""

from __future__ import annotations

import json

import typer

from pinchwire.cli._app import load_app, run_with_app

circuit_app = typer.Typer(name="circuit", help="Gateway circuit breaker.")


@circuit_app.command("status")
def status_command(
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Print breaker state, consecutive failures and seconds until retry."""
    app = load_app(app_ref, config or None)
    status = run_with_app(app, lambda a: a.circuit_status())
    typer.echo(json.dumps(status, indent=2))


@circuit_app.command("reset")
def reset_command(
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Force the breaker closed."""
    app = load_app(app_ref, config or None)
    run_with_app(app, lambda a: a.reset_circuit(actor="cli"))
    typer.echo("Circuit breaker reset.")
