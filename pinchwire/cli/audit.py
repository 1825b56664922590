"""``pinchwire audit``: list, export, purge and per-user erasure of the audit ledger."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pinchwire.audit.types import AuditEntry, AuditQueryFilters
from pinchwire.cli._app import load_app, run_with_app

console = Console()

audit_app = typer.Typer(name="audit", help="Inspect and maintain the audit ledger.")


def _parse_day(value: str, option: str) -> date | None:
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise typer.BadParameter(f"{option} must be YYYY-MM-DD.") from exc


def _filters(
    event_type: str,
    source: str,
    search: str,
    since: str,
    until: str,
    page: int = 1,
    per_page: int = 50,
) -> AuditQueryFilters:
    if page < 1:
        raise typer.BadParameter("page must be >= 1.")
    if per_page < 1:
        raise typer.BadParameter("per-page must be >= 1.")
    return AuditQueryFilters(
        event_type=event_type or None,
        source=source or None,
        search=search or None,
        date_from=_parse_day(since, "--since"),
        date_to=_parse_day(until, "--until"),
        page=page,
        per_page=per_page,
    )


def _table(items: list[AuditEntry], total: int) -> Table:
    table = Table(title=f"Audit log ({len(items)} of {total})")
    for column in ("ID", "Date", "Event Type", "Source", "Message"):
        table.add_column(column)
    for item in items:
        table.add_row(
            str(item.id),
            item.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            item.event_type,
            item.source,
            item.message,
        )
    return table


@audit_app.command("list")
def list_command(
    event_type: str = typer.Option("", "--event-type", help="Filter by event type."),
    source: str = typer.Option("", "--source", help="Filter by source component."),
    search: str = typer.Option("", "--search", help="Substring match on the message."),
    since: str = typer.Option("", "--since", help="First day to include (YYYY-MM-DD)."),
    until: str = typer.Option("", "--until", help="Last day to include (YYYY-MM-DD)."),
    page: int = typer.Option(1, "--page"),
    per_page: int = typer.Option(50, "--per-page", "--limit", help="Entries per page."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """List audit entries, newest first."""
    filters = _filters(event_type, source, search, since, until, page, per_page)
    app = load_app(app_ref, config or None)
    result = run_with_app(app, lambda a: a.ledger.query(filters))
    if as_json:
        typer.echo(
            json.dumps(
                {"items": [item.to_dict() for item in result.items], "total": result.total},
                ensure_ascii=False,
                indent=2,
            )
        )
        return
    console.print(_table(result.items, result.total))


@audit_app.command("export")
def export_command(
    output: str = typer.Option("", "--output", "-o", help="Write CSV to this file instead of stdout."),
    event_type: str = typer.Option("", "--event-type"),
    source: str = typer.Option("", "--source"),
    search: str = typer.Option("", "--search"),
    since: str = typer.Option("", "--since"),
    until: str = typer.Option("", "--until"),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Export matching audit entries as CSV."""
    filters = _filters(event_type, source, search, since, until)
    app = load_app(app_ref, config or None)
    csv_text = run_with_app(app, lambda a: a.ledger.export_csv(filters))
    if output:
        Path(output).write_text(csv_text, encoding="utf-8")
        console.print(f"[green]Exported[/green] {output}")
        return
    typer.echo(csv_text, nl=False)


@audit_app.command("purge")
def purge_command(
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Delete entries older than the retention window now."""
    app = load_app(app_ref, config or None)
    removed = run_with_app(app, lambda a: a.ledger.cleanup_job())
    console.print(f"Removed {removed} expired audit entries.")


@audit_app.command("erase-user")
def erase_user_command(
    user_id: str = typer.Argument(..., help="User identifier whose entries are erased."),
    app_ref: str = typer.Option("", "--app", help="Application as module:attribute."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Hard-delete every audit entry tied to a user, batch by batch."""
    if not user_id.strip():
        raise typer.BadParameter("user_id must not be empty.")
    app = load_app(app_ref, config or None)

    async def _erase(a):  # type: ignore[no-untyped-def]
        total = 0
        while True:
            batch = await a.ledger.erase_user_data(user_id.strip())
            total += batch.items_removed
            if batch.done or batch.items_removed == 0:
                return total

    removed = run_with_app(app, _erase)
    console.print(f"Removed {removed} audit entries for user {user_id}.")
