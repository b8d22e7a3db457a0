"""CLI entry point for prtasks.

Commands:
  analyze  - turn a PR's review comments into tasks (resumable)
  tasks    - list stored tasks for a PR
  stats    - report on oracle response analytics
"""

from __future__ import annotations

import importlib.metadata
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from prtasks_cli.commands.analyze import analyze_cmd
from prtasks_cli.commands.stats import stats_cmd
from prtasks_cli.commands.tasks import tasks_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prtasks.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path is a .db file or the directory holding tasks.db)
      (default)     → FileStore   (store_path is the directory, one PR-<n>/ per PR)

    This factory lives in cli.py so neither prtasks_core nor prtasks_store
    know about the CLI config format.
    """
    store_type = config.get("store", "file")

    if store_type == "sqlite":
        from prtasks_store.sqlite import SQLiteStore

        path = config.get("store_path") or ".pr-review"
        if not path.endswith(".db"):
            path = os.path.join(path, "tasks.db")
        return SQLiteStore(db_path=path)

    if store_type != "file":
        console.print(f"[yellow]Unknown store {store_type!r}; using the file store.[/yellow]")

    from prtasks_store.file import FileStore

    return FileStore(base_dir=config.get("store_path") or ".pr-review")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prtasks"),
    prog_name="prtasks",
)
@click.option(
    "--config",
    "config_path",
    default=".prtasks.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRTASKS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Turn GitHub PR review comments into a deduplicated task list."""
    from prtasks_cli.auth import resolve_github_token
    from prtasks_core.config import load_config
    from prtasks_core.monitor import ResponseMonitor

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    monitor = ResponseMonitor.from_config(config)
    ctx.obj["store"] = store
    ctx.obj["monitor"] = monitor
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)
    ctx.call_on_close(monitor.close)


main.add_command(analyze_cmd)
main.add_command(tasks_cmd)
main.add_command(stats_cmd)
