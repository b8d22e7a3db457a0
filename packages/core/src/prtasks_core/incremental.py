"""Checkpointed, resumable processing of a PR's comments.

Comments are processed in slices. After each slice the checkpoint is
written, so an interrupted run loses at most the slice in flight. A comment
counts as done only while its stored fingerprint matches its current
content; editing a comment makes it pending again.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Callable

from prtasks_store.base import BaseStore
from prtasks_store.models import CheckpointState, PersistedTask, is_checkpoint_stale

from prtasks_core.dedup import deduplicate_tasks
from prtasks_core.dispatcher import CommentProcessor, dispatch_batch
from prtasks_core.errors import BatchFailedError, CriticalOracleError, CriticalProcessingError, ProcessingTimeoutError
from prtasks_core.identity import assign_identity, comment_fingerprint
from prtasks_core.models import CommentContext

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class IncrementalOptions:
    batch_size: int = 5
    max_batches: int = 0
    timeout: float = 600.0
    resume: bool = True
    checkpoint_max_age: float = 24 * 3600.0
    batch_pause: float = 0.5
    progress_callback: ProgressCallback | None = None
    # Callers that persist the tasks themselves clear the checkpoint afterwards.
    clear_on_completion: bool = True

    @classmethod
    def from_config(cls, config: dict, progress_callback: ProgressCallback | None = None) -> IncrementalOptions:
        return cls(
            batch_size=max(1, int(config.get("batch_size", 5))),
            max_batches=int(config.get("max_batches", 0) or 0),
            timeout=float(config.get("timeout_seconds", 600)),
            resume=bool(config.get("resume", True)),
            checkpoint_max_age=float(config.get("checkpoint_max_age_hours", 24)) * 3600,
            batch_pause=0.0 if config.get("fast_mode") else 0.5,
            progress_callback=progress_callback,
        )


@dataclass
class IncrementalResult:
    tasks: list[PersistedTask]
    total: int
    processed: int
    remaining: int
    resumed: bool = False
    batches_run: int = 0
    failures: dict[int, Exception] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.remaining == 0


def _start_state(store: BaseStore, pr_number: int, total: int, options: IncrementalOptions) -> tuple[CheckpointState, bool]:
    if options.resume:
        state = store.load_checkpoint(pr_number)
        if state is not None and not is_checkpoint_stale(state, options.checkpoint_max_age):
            logger.info("Resuming PR #%d from checkpoint (%d comment(s) done)", pr_number, len(state.processed_comments))
            state.total_comments = total
            return state, True
        if state is not None:
            logger.info("Discarding stale checkpoint for PR #%d", pr_number)
    return CheckpointState(pr_number=pr_number, total_comments=total, batch_size=options.batch_size), False


def _save_quietly(store: BaseStore, pr_number: int, state: CheckpointState) -> bool:
    try:
        store.save_checkpoint(pr_number, state)
    except Exception as e:
        logger.error("Could not save checkpoint for PR #%d: %s", pr_number, e)
        return False
    return True


def generate_tasks_incremental(
    contexts: list[CommentContext],
    processor: CommentProcessor,
    store: BaseStore,
    pr_number: int,
    options: IncrementalOptions | None = None,
) -> IncrementalResult:
    """Process every pending comment, checkpointing after each slice.

    Raises ProcessingTimeoutError when the deadline expires and
    CriticalProcessingError when the oracle is unusable; the checkpoint is
    saved before either is raised.
    """
    options = options or IncrementalOptions()
    deadline = time.monotonic() + options.timeout
    state, resumed = _start_state(store, pr_number, len(contexts), options)

    fingerprints = {c.comment_id: comment_fingerprint(c.comment) for c in contexts}
    pending = [c for c in contexts if state.processed_comments.get(c.comment_id) != fingerprints[c.comment_id]]
    pending_ids = {c.comment_id for c in pending}

    # Entries for edited or vanished comments no longer count, and neither do their tasks.
    state.processed_comments = {
        cid: fp for cid, fp in state.processed_comments.items() if cid in fingerprints and cid not in pending_ids
    }
    state.partial_tasks = [t for t in state.partial_tasks if t.source_comment_id in state.processed_comments]
    state.processed_count = len(state.processed_comments)
    if resumed:
        logger.info("%d comment(s) already processed, %d pending", state.processed_count, len(pending))

    failures: dict[int, Exception] = {}
    batches_run = 0
    slices = [pending[i : i + options.batch_size] for i in range(0, len(pending), options.batch_size)]

    for index, batch in enumerate(slices):
        if options.max_batches and batches_run >= options.max_batches:
            logger.info("Batch limit of %d reached; checkpoint kept for the next run", options.max_batches)
            break

        remaining_time = deadline - time.monotonic()
        try:
            if remaining_time <= 0:
                raise FuturesTimeoutError()
            result = dispatch_batch(processor, batch, timeout=remaining_time)
        except FuturesTimeoutError:
            _save_quietly(store, pr_number, state)
            raise ProcessingTimeoutError(options.timeout, state.processed_count, state.total_comments)
        except CriticalOracleError as e:
            saved = _save_quietly(store, pr_number, state)
            raise CriticalProcessingError(e, checkpoint_saved=saved) from e
        except BatchFailedError as e:
            logger.warning("Batch %d/%d failed entirely: %s", index + 1, len(slices), e)
            failures.update(e.failures)
            store.save_checkpoint(pr_number, state)
            batches_run += 1
            continue

        for context in result.succeeded:
            state.processed_comments[context.comment_id] = fingerprints[context.comment_id]
        state.partial_tasks.extend(assign_identity(result.candidates, processor.config, pr_number))
        state.processed_count = len(state.processed_comments)
        failures.update(result.failures)
        store.save_checkpoint(pr_number, state)
        if processor.monitor is not None:
            processor.monitor.flush()
        batches_run += 1

        if options.progress_callback is not None:
            options.progress_callback(state.processed_count, state.total_comments)
        if options.batch_pause and index + 1 < len(slices):
            time.sleep(options.batch_pause)

    remaining = sum(1 for c in contexts if state.processed_comments.get(c.comment_id) != fingerprints[c.comment_id])
    tasks = deduplicate_tasks(state.partial_tasks, processor.config, oracle=processor.oracle)
    if remaining:
        logger.info("%d comment(s) remain for PR #%d; checkpoint kept", remaining, pr_number)
    elif options.clear_on_completion:
        store.delete_checkpoint(pr_number)
    return IncrementalResult(
        tasks=tasks,
        total=len(contexts),
        processed=state.processed_count,
        remaining=remaining,
        resumed=resumed,
        batches_run=batches_run,
        failures=failures,
    )
