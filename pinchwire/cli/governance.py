"""``pinchwire governance``: list and run governance tasks."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from pinchwire.cli._app import load_app, run_with_app
from pinchwire.errors import UnknownTaskError
from pinchwire.governance.runner import TaskRunResult

console = Console()

governance_app = typer.Typer(name="governance", help="Governance task registration and manual runs.")


@governance_app.command("list")
def list_command(
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Show registered tasks, their interval and whether they are enabled and scheduled."""
    app = load_app(app_ref, config or None)
    enabled = set(app.tasks.enabled_names(app.config.governance))
    registered = run_with_app(app, lambda a: a.scheduler.registered_tasks())
    table = Table(title="Governance tasks")
    for column in ("Task", "Interval (s)", "Enabled", "Scheduled", "Description"):
        table.add_column(column)
    for definition in app.tasks.definitions():
        table.add_row(
            definition.name,
            str(app.tasks.interval_for(definition.name, app.config.governance)),
            "yes" if definition.name in enabled else "no",
            "yes" if definition.name in registered else "no",
            definition.description,
        )
    console.print(table)


def _print_result(result: TaskRunResult) -> None:
    if result.error:
        console.print(f"[red]{result.task_name}: failed[/red] {result.error}")
    elif not result.findings:
        console.print(f"{result.task_name}: no findings")
    elif result.suppressed:
        console.print(f"{result.task_name}: {len(result.findings)} findings suppressed by filter")
    else:
        status = "[green]delivered[/green]" if result.delivered else "[yellow]not delivered[/yellow]"
        console.print(f"{result.task_name}: {len(result.findings)} findings, {status}")


@governance_app.command("run")
def run_command(
    task: str = typer.Argument("", help="Task name to run."),
    run_all: bool = typer.Option(False, "--all", help="Run every enabled task."),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Run one task (or all enabled tasks) immediately."""
    if not run_all and not task.strip():
        raise typer.BadParameter("Pass a task name or --all.")
    app = load_app(app_ref, config or None)
    if run_all:
        for result in run_with_app(app, lambda a: a.run_all()):
            _print_result(result)
        return
    try:
        result = run_with_app(app, lambda a: a.run_task(task.strip()))
    except UnknownTaskError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _print_result(result)
