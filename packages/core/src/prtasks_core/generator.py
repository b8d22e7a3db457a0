"""Top-level task generation for one pull request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from github import GithubException
from rich.console import Console

from prtasks_store.base import BaseStore
from prtasks_store.models import PersistedTask

from prtasks_core.dispatcher import CommentProcessor
from prtasks_core.errors import OracleAuthenticationError
from prtasks_core.extractor import extract_comments
from prtasks_core.gh.pull_request import fetch_reviews, get_pull, get_repo
from prtasks_core.incremental import IncrementalOptions, generate_tasks_incremental
from prtasks_core.providers.anthropic import AnthropicOracle
from prtasks_core.providers.openai import OpenAIOracle

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class GenerationSummary:
    """Result of run_generation, for the CLI to report on."""

    repo: str
    pr_number: int
    total_comments: int = 0
    processed: int = 0
    remaining: int = 0
    resumed: bool = False
    tasks: list[PersistedTask] = field(default_factory=list)
    failures: dict[int, Exception] = field(default_factory=dict)
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def completed(self) -> bool:
        return self.remaining == 0


def get_oracle(config: dict):
    model = config["model"]
    if model == "anthropic":
        if not config.get("anthropic_api_key"):
            raise OracleAuthenticationError("ANTHROPIC_API_KEY is not set.")
        return AnthropicOracle(api_key=config["anthropic_api_key"])
    if model == "openai":
        if not config.get("openai_api_key"):
            raise OracleAuthenticationError("OPENAI_API_KEY is not set.")
        return OpenAIOracle(api_key=config["openai_api_key"])
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def _print_progress(done: int, total: int) -> None:
    console.print(f"  [dim]{done}/{total} comment(s) processed[/dim]")


def run_generation(
    repo: str,
    pr_number: int,
    config: dict,
    store: BaseStore,
    monitor=None,
    oracle=None,
    repo_obj=None,
) -> GenerationSummary:
    """Fetch a PR's review comments, turn them into tasks, and merge them into the store.

    ProcessingTimeoutError and CriticalProcessingError propagate to the
    caller after the checkpoint is saved; the next call resumes from it.
    """
    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])
    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise ValueError(f"PR #{pr_number} not found in {repo}.")

    reviews = fetch_reviews(this_pr)
    contexts = extract_comments(reviews, config)
    summary = GenerationSummary(repo=repo, pr_number=pr_number, total_comments=len(contexts))
    if not contexts:
        console.print("[yellow]No unresolved review comments. Nothing to do.[/yellow]")
        return summary

    console.print(f"Analyzing {len(contexts)} comment(s) from {len(reviews)} review(s) on PR #{pr_number}")
    processor = CommentProcessor(oracle if oracle is not None else get_oracle(config), config, monitor=monitor)
    options = IncrementalOptions.from_config(config, progress_callback=_print_progress)
    options.clear_on_completion = False
    result = generate_tasks_incremental(contexts, processor, store, pr_number, options)

    summary.tasks = store.merge_tasks(pr_number, result.tasks)
    if result.completed:
        store.delete_checkpoint(pr_number)
    summary.processed = result.processed
    summary.remaining = result.remaining
    summary.resumed = result.resumed
    summary.failures = result.failures
    logger.debug("Merged %d task(s) for PR #%d", len(result.tasks), pr_number)
    return summary
