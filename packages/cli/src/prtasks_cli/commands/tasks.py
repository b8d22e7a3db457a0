"""tasks command: list stored tasks."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prtasks_store.models import TASK_STATUSES

console = Console()

_PRIORITY_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}


@click.command("tasks")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--status", type=click.Choice(TASK_STATUSES), default=None, help="Only show tasks with this status.")
@click.option("--all", "show_all", is_flag=True, help="Include cancelled tasks.")
@click.pass_context
def tasks_cmd(ctx, pr_number: int, status: str | None, show_all: bool):
    """List the tasks stored for a pull request."""
    store = ctx.obj["store"]
    tasks = store.list_tasks(pr_number)
    if status:
        tasks = [t for t in tasks if t.status == status]
    elif not show_all:
        tasks = [t for t in tasks if t.status != "cancelled"]

    if not tasks:
        console.print(f"[yellow]No tasks found for PR #{pr_number}.[/yellow]")
        return

    table = Table(title=f"Tasks for PR #{pr_number}", show_header=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Location")
    table.add_column("Description")
    for t in tasks:
        style = _PRIORITY_STYLE.get(t.priority, "white")
        location = f"{t.file}:{t.line}" if t.file else "(review)"
        table.add_row(t.id[:8], f"[{style}]{t.priority}[/{style}]", t.status, location, t.description)
    console.print(table)
