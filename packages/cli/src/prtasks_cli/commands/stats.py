"""stats command: report on recorded oracle responses."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown

console = Console()


@click.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show success rate, truncation analysis and the recommended request budget.

    Built from the response log the analyze command writes, so it is empty
    until analyze has run at least once with analytics enabled.
    """
    monitor = ctx.obj.get("monitor") if ctx.obj else None
    if monitor is None or not monitor.enabled:
        raise click.UsageError("Analytics are disabled. Set 'analytics_enabled: true' in .prtasks.yml.")

    if not monitor.events():
        console.print("[yellow]No response events recorded yet. Run `prtasks analyze` first.[/yellow]")
        return

    console.print(Markdown(monitor.generate_report()))
