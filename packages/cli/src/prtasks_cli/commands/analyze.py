"""analyze command: turn a PR's review comments into stored tasks."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from prtasks_core.errors import CriticalOracleError, CriticalProcessingError, ProcessingTimeoutError
from prtasks_core.generator import GenerationSummary, run_generation

console = Console()


def _print_summary(summary: GenerationSummary) -> None:
    active = [t for t in summary.tasks if t.status != "cancelled"]
    console.print(
        f"\n[bold]PR #{summary.pr_number}:[/bold] {summary.processed}/{summary.total_comments} comment(s) processed, "
        f"{len(active)} active task(s)."
    )
    if active:
        by_status = Counter(t.status for t in active)
        table = Table(title="Tasks by status", show_header=True)
        table.add_column("Status", style="bold")
        table.add_column("Count", justify="right")
        for status in ("todo", "doing", "pending", "done"):
            if by_status.get(status):
                table.add_row(status, str(by_status[status]))
        console.print(table)

    if summary.failures:
        console.print(f"[yellow]{len(summary.failures)} comment(s) failed and will be retried on the next run.[/yellow]")
    if not summary.completed:
        console.print(
            f"[yellow]{summary.remaining} comment(s) remaining. Run the same command again to continue "
            "from the checkpoint.[/yellow]"
        )


@click.command("analyze")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--fresh", is_flag=True, help="Ignore any checkpoint and start over.")
@click.option("--fast", is_flag=True, help="Abbreviated requests; skip very short comments.")
@click.option("--batch-size", type=int, default=None, help="Comments per processing slice. Overrides config file.")
@click.option("--max-batches", type=int, default=None, help="Stop after this many slices (0 = no limit).")
@click.option("--timeout", "timeout_seconds", type=int, default=None, help="Deadline for the whole run, in seconds.")
@click.pass_context
def analyze_cmd(
    ctx,
    repo: str,
    pr_number: int,
    fresh: bool,
    fast: bool,
    batch_size: int | None,
    max_batches: int | None,
    timeout_seconds: int | None,
):
    """Generate tasks from the review comments of a pull request.

    Progress is checkpointed after every slice of comments. If the run is
    interrupted, times out or hits --max-batches, running the same command
    again continues where it stopped.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when model is anthropic
      OPENAI_API_KEY       Required when model is openai
    """
    config = dict(ctx.obj["config"])
    overrides = {
        "resume": False if fresh else None,
        "fast_mode": True if fast else None,
        "batch_size": batch_size,
        "max_batches": max_batches,
        "timeout_seconds": timeout_seconds,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})

    if not config.get("github_token"):
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    try:
        summary = run_generation(
            repo=repo,
            pr_number=pr_number,
            config=config,
            store=ctx.obj["store"],
            monitor=ctx.obj.get("monitor"),
        )
    except ProcessingTimeoutError as e:
        console.print(f"[yellow]{e}[/yellow]")
        ctx.exit(2)
    except CriticalProcessingError as e:
        raise click.ClickException(str(e))
    except CriticalOracleError as e:
        raise click.ClickException(f"{e} {e.remediation}")
    except ValueError as e:
        raise click.UsageError(str(e))

    _print_summary(summary)
