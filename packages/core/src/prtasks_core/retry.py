"""Retry decisions for a single oracle invocation.

Each failure is categorised, scored for how likely it is that the response
was cut off, and mapped to a strategy: retry as-is, shrink the request, or
back off. The caller owns the loop; this module only decides.
"""

from __future__ import annotations

import logging
import time

from prtasks_core.errors import (
    CriticalOracleError,
    MalformedResponseError,
    OracleNetworkError,
    OracleTimeoutError,
    PayloadTooLargeError,
    RateLimitError,
    TruncatedResponseError,
)
from prtasks_core.models import RetryAttempt

logger = logging.getLogger(__name__)

JSON_TRUNCATION = "json_truncation"
PAYLOAD_TOO_LARGE = "payload_too_large"
RATE_LIMIT = "rate_limit"
TIMEOUT = "timeout"
NETWORK = "network"
MALFORMED = "malformed_response"
UNKNOWN = "unknown"
CRITICAL = "critical"

SIMPLE_RETRY = "simple_retry"
SHRINK_AGGRESSIVE = "shrink_aggressive"
SHRINK_MODERATE = "shrink_moderate"
BACKOFF = "backoff"

SHRINK_FACTORS = {SHRINK_AGGRESSIVE: 0.5, SHRINK_MODERATE: 0.7}

# Exception type first, in order; subclasses must precede their bases.
ERROR_TYPE_CATEGORIES: tuple[tuple[type[Exception], str], ...] = (
    (CriticalOracleError, CRITICAL),
    (TruncatedResponseError, JSON_TRUNCATION),
    (PayloadTooLargeError, PAYLOAD_TOO_LARGE),
    (RateLimitError, RATE_LIMIT),
    (OracleTimeoutError, TIMEOUT),
    (OracleNetworkError, NETWORK),
    (MalformedResponseError, MALFORMED),
)

# Fallback when the type says nothing; first matching substring wins.
ERROR_MESSAGE_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("unexpected end of json", JSON_TRUNCATION),
    ("unexpected end of input", JSON_TRUNCATION),
    ("unterminated string", JSON_TRUNCATION),
    ("payload too large", PAYLOAD_TOO_LARGE),
    ("prompt is too long", PAYLOAD_TOO_LARGE),
    ("exceeds maximum", PAYLOAD_TOO_LARGE),
    ("rate limit", RATE_LIMIT),
    ("too many requests", RATE_LIMIT),
    ("timed out", TIMEOUT),
    ("timeout", TIMEOUT),
    ("deadline exceeded", TIMEOUT),
    ("network", NETWORK),
    ("connection", NETWORK),
    ("invalid character", MALFORMED),
    ("expecting value", MALFORMED),
)

SHRINK_MARKER = "Comment Details:"
TRUNCATED_NOTE = "\n\n[content truncated for retry]"
OMITTED_NOTE = "\n\n[omitted for retry]"

_HUGE_PROMPT = 30000
_HIGH_TRUNCATION_SCORE = 0.7
_HISTORY = 10


def categorize_error(error: Exception) -> str:
    for error_type, category in ERROR_TYPE_CATEGORIES:
        if isinstance(error, error_type):
            return category
    message = str(error).lower()
    for needle, category in ERROR_MESSAGE_CATEGORIES:
        if needle in message:
            return category
    return UNKNOWN


class TruncationPatternDetector:
    """Scores how likely a failure was caused by a cut-off response.

    Keeps the response sizes of recent attempts so a shrinking trend can be
    detected, and counts the retries already spent on malformed output. One
    detector per invocation.
    """

    def __init__(self, large_prompt: int = 20000):
        self.large_prompt = large_prompt
        self.response_sizes: list[int] = []
        self.malformed_retries = 0

    def score(self, category: str, prompt_size: int, response_size: int) -> float:
        self.response_sizes.append(response_size)
        self.response_sizes = self.response_sizes[-_HISTORY:]

        score = 0.0
        if category == JSON_TRUNCATION:
            score += 0.4
        if prompt_size > _HUGE_PROMPT:
            score += 0.3
        elif prompt_size > self.large_prompt:
            score += 0.2
        if len(self.response_sizes) >= 3:
            a, b, c = self.response_sizes[-3:]
            if c < b < a:
                score += 0.2
        if 0 < response_size < 1000:
            score += 0.1
        return min(score, 1.0)


def shrink_prompt(prompt: str, factor: float, marker: str = SHRINK_MARKER) -> str:
    """Cut ``prompt`` to roughly ``factor`` of its size.

    The header before the ``marker`` line is kept verbatim; only the data
    after it is truncated. If the header alone exceeds the budget, the data
    is dropped entirely.
    """
    if not 0.0 < factor < 1.0:
        return prompt

    target = int(len(prompt) * factor)
    start = prompt.find(marker)
    if start == -1:
        return prompt[:target] + TRUNCATED_NOTE

    header, data = prompt[:start], prompt[start:]
    budget = target - len(header)
    if budget <= 0:
        return header.rstrip("\n") + OMITTED_NOTE
    if len(data) <= budget:
        return prompt
    return header + data[:budget] + TRUNCATED_NOTE


class RetryStrategy:
    """Decides whether and how to retry a failed invocation."""

    def __init__(
        self,
        enabled: bool = True,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 30.0,
        large_prompt: int = 20000,
    ):
        self.enabled = enabled
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.large_prompt = large_prompt

    @classmethod
    def from_config(cls, config: dict) -> RetryStrategy:
        return cls(
            enabled=config.get("smart_retry", True),
            max_attempts=config.get("max_attempts", 3),
            base_delay=config.get("retry_base_delay", 2.0),
            max_delay=config.get("retry_max_delay", 30.0),
            large_prompt=config.get("truncation_threshold", 20000),
        )

    def new_detector(self) -> TruncationPatternDetector:
        return TruncationPatternDetector(self.large_prompt)

    def select_strategy(self, category: str, score: float, prompt_size: int) -> str:
        if category == PAYLOAD_TOO_LARGE:
            return SHRINK_AGGRESSIVE
        if category == JSON_TRUNCATION:
            if score > _HIGH_TRUNCATION_SCORE:
                return SHRINK_AGGRESSIVE
            if prompt_size > self.large_prompt:
                return SHRINK_MODERATE
            return SIMPLE_RETRY
        if category == TIMEOUT:
            return SHRINK_MODERATE if prompt_size > self.large_prompt else BACKOFF
        if category in (RATE_LIMIT, NETWORK):
            return BACKOFF
        return SIMPLE_RETRY

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based): base * 2**(attempt-1), capped."""
        return min(self.base_delay * (2 ** max(attempt - 1, 0)), self.max_delay)

    def next_attempt(
        self,
        attempts_made: int,
        error: Exception,
        prompt_size: int,
        detector: TruncationPatternDetector,
    ) -> RetryAttempt | None:
        """Return the plan for the next attempt, or None to give up."""
        category = categorize_error(error)
        if not self.enabled or category == CRITICAL or attempts_made >= self.max_attempts:
            return None
        if category in (MALFORMED, UNKNOWN):
            if detector.malformed_retries >= 1:
                return None
            detector.malformed_retries += 1

        response_size = getattr(error, "response_size", 0)
        score = detector.score(category, prompt_size, response_size)
        strategy = self.select_strategy(category, score, prompt_size)
        delay = self.delay_for(attempts_made) if strategy == BACKOFF else 0.0
        plan = RetryAttempt(
            attempt_number=attempts_made + 1,
            strategy=strategy,
            category=category,
            delay=delay,
            error=str(error),
            truncation_score=score,
            prompt_size=prompt_size,
            response_size=response_size,
        )
        logger.debug(
            "Retry %d/%d: category=%s score=%.2f strategy=%s delay=%.1fs",
            plan.attempt_number,
            self.max_attempts,
            category,
            score,
            strategy,
            delay,
        )
        return plan

    def adjust_prompt(self, prompt: str, plan: RetryAttempt) -> str:
        factor = SHRINK_FACTORS.get(plan.strategy)
        return shrink_prompt(prompt, factor) if factor else prompt

    def wait(self, plan: RetryAttempt) -> None:
        if plan.delay > 0:
            time.sleep(plan.delay)
