"""``pinchwire webhook``: gateway connectivity check."""

from __future__ import annotations

import typer
from rich.console import Console

from pinchwire.cli._app import load_app, run_with_app

console = Console()

webhook_app = typer.Typer(name="webhook", help="Outbound gateway delivery.")


@webhook_app.command("test")
def test_command(
    message: str = typer.Option("Test webhook from the pinchwire CLI.", "--message", "-m"),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Send a ``test`` event to the configured gateway."""
    app = load_app(app_ref, config or None)
    if not app.dispatcher.is_configured:
        console.print("[red]Gateway is not configured (gateway.url and gateway.token).[/red]")
        raise typer.Exit(1)
    ok = run_with_app(app, lambda a: a.dispatch("test", message, {"source": "cli"}))
    if ok:
        console.print(f"[green]Delivered[/green] test event to {app.dispatcher.endpoint}")
        return
    console.print("[yellow]Delivery failed or was deferred; see `pinchwire audit list --source webhook`.[/yellow]")
    raise typer.Exit(1)
