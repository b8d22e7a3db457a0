"""Concurrent per-comment invocation of the oracle.

``CommentProcessor.process`` handles one comment: build the request, call
the oracle, decode, and retry under the retry strategy. ``dispatch_batch``
runs one processor call per comment in a thread pool and collects whatever
succeeded. One failing comment never stops its siblings; only a critical
error does.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from prtasks_store.models import utc_now

from prtasks_core.errors import BatchFailedError, CriticalOracleError, OracleError, PayloadTooLargeError
from prtasks_core.models import CommentContext, ResponseEvent, TaskCandidate
from prtasks_core.prompts import build_comment_prompt, build_fast_prompt
from prtasks_core.response import decode_task_response, to_candidates
from prtasks_core.retry import RetryStrategy, categorize_error, shrink_prompt

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    candidates: list[TaskCandidate] = field(default_factory=list)
    succeeded: list[CommentContext] = field(default_factory=list)
    failures: dict[int, Exception] = field(default_factory=dict)


class CommentProcessor:
    """Turns one CommentContext into TaskCandidates, retrying as configured."""

    def __init__(self, oracle, config: dict, monitor=None, retry: RetryStrategy | None = None):
        self.oracle = oracle
        self.config = config
        self.monitor = monitor
        self.retry = retry or RetryStrategy.from_config(config)
        self.fast_mode = config.get("fast_mode", False)
        self.max_prompt_size = config.get("max_prompt_size", 32768)

    def should_skip(self, context: CommentContext) -> bool:
        """Fast mode skips bodies too short to hold an actionable request."""
        if not self.fast_mode:
            return False
        return len(context.comment.body.strip()) < self.config.get("fast_mode_min_length", 20)

    def build_prompt(self, context: CommentContext) -> str:
        if self.fast_mode:
            return build_fast_prompt(context, self.config)
        return build_comment_prompt(context, self.config)

    def _fit_to_budget(self, prompt: str) -> tuple[str, bool]:
        if self.monitor is None or not self.monitor.should_shrink(len(prompt)):
            return prompt, False
        budget = self.monitor.recommended_prompt_budget()
        if budget >= len(prompt):
            return prompt, False
        logger.debug("Shrinking request from %d to about %d chars", len(prompt), budget)
        return shrink_prompt(prompt, budget / len(prompt)), True

    def _record(self, **fields) -> None:
        if self.monitor is not None:
            self.monitor.record(ResponseEvent(timestamp=utc_now(), **fields))

    def process(self, context: CommentContext) -> list[TaskCandidate]:
        prompt, optimized = self._fit_to_budget(self.build_prompt(context))
        detector = self.retry.new_detector()
        attempts = 0

        while True:
            attempts += 1
            started = time.monotonic()
            response_size = 0
            try:
                if len(prompt) > self.max_prompt_size:
                    raise PayloadTooLargeError(
                        f"Request of {len(prompt)} chars exceeds maximum of {self.max_prompt_size}"
                    )
                raw = self.oracle.invoke(prompt, output_format="json")
                response_size = len(raw)
                items, recovered = decode_task_response(raw)
            except OracleError as e:
                elapsed_ms = int((time.monotonic() - started) * 1000)
                plan = self.retry.next_attempt(attempts, e, len(prompt), detector)
                self._record(
                    prompt_size=len(prompt),
                    response_size=e.response_size or response_size,
                    processing_time_ms=elapsed_ms,
                    success=False,
                    error_type=categorize_error(e),
                    retry_count=attempts - 1,
                    truncation_score=plan.truncation_score if plan else 0.0,
                    prompt_optimized=optimized,
                )
                if plan is None:
                    raise
                logger.warning(
                    "Comment %d: %s (attempt %d/%d), retrying with %s",
                    context.comment_id,
                    e,
                    attempts,
                    self.retry.max_attempts,
                    plan.strategy,
                )
                adjusted = self.retry.adjust_prompt(prompt, plan)
                optimized = optimized or adjusted != prompt
                prompt = adjusted
                self.retry.wait(plan)
                continue

            candidates = to_candidates(items, context)
            self._record(
                prompt_size=len(prompt),
                response_size=response_size,
                processing_time_ms=int((time.monotonic() - started) * 1000),
                success=True,
                recovery_used=recovered,
                retry_count=attempts - 1,
                tasks_extracted=len(candidates),
                prompt_optimized=optimized,
            )
            return candidates


def dispatch_batch(
    processor: CommentProcessor,
    contexts: list[CommentContext],
    timeout: float | None = None,
) -> BatchResult:
    """Process ``contexts`` concurrently and aggregate the outcome.

    Returns when every context has finished. Raises BatchFailedError if none
    succeeded, CriticalOracleError as soon as any context hits one, and
    concurrent.futures.TimeoutError if ``timeout`` expires first.
    """
    result = BatchResult()
    to_run = []
    for context in contexts:
        if processor.should_skip(context):
            logger.debug("Skipping short comment %d in fast mode", context.comment_id)
            result.succeeded.append(context)
        else:
            to_run.append(context)
    if not to_run:
        return result

    pool = ThreadPoolExecutor(max_workers=len(to_run), thread_name_prefix="prtasks")
    futures = {pool.submit(processor.process, context): context for context in to_run}
    done: dict[int, list[TaskCandidate]] = {}
    try:
        for future in as_completed(futures, timeout=timeout):
            context = futures[future]
            try:
                done[context.comment_id] = future.result()
            except CriticalOracleError:
                raise
            except Exception as e:
                logger.warning("Comment %d failed: %s", context.comment_id, e)
                result.failures[context.comment_id] = e
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    # Completion order is arbitrary; report in input order.
    for context in to_run:
        if context.comment_id in done:
            result.candidates.extend(done[context.comment_id])
            result.succeeded.append(context)

    if not result.succeeded:
        raise BatchFailedError(result.failures)
    return result
