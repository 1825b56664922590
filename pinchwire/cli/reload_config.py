"""``pinchwire reload``: re-read config and resync task registrations."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.table import Table

from pinchwire.cli._app import load_app, run_with_app
from pinchwire.config import ConfigManager, ReloadResult

console = Console()


def _render(result: ReloadResult) -> Table:
    table = Table(title="Config reload")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Status")
    for key, value in sorted(result.applied.items()):
        table.add_row(key, repr(value), "[green]applied[/green]")
    for key, value in sorted(result.skipped.items()):
        table.add_row(key, repr(value), "[yellow]restart required[/yellow]")
    return table


def reload_config_command(config: str | None = None, app_ref: str | None = None) -> ReloadResult:
    """Reload hot-reloadable settings; with an app, re-run task registration."""
    if config is not None and not Path(config).exists():
        console.print(f"[yellow]Note:[/yellow] config file not found, defaults/env were used: {config}")
    result = ConfigManager.instance().reload(config_path=config)
    if not result.applied and not result.skipped:
        console.print("No configuration changes.")
    else:
        console.print(_render(result))

    governance_changed = any(key.startswith("governance.") for key in result.applied)
    if app_ref and governance_changed:
        app = load_app(app_ref, config)
        app.apply_config(ConfigManager.instance().get())
        schedule = run_with_app(app, lambda a: a.ensure_tasks_scheduled())
        console.print(
            f"Task registration: scheduled={schedule.scheduled or '-'} unscheduled={schedule.unscheduled or '-'}"
        )
    return result
