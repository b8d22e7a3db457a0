"""Error taxonomy for the task-generation pipeline.

Critical errors mean the oracle cannot be used at all and stop the run after
the checkpoint is saved. Every other OracleError is recoverable and goes
through the retry strategy.
"""

from __future__ import annotations


class OracleError(Exception):
    """Base class for failures of a single oracle invocation."""

    def __init__(self, message: str, response_size: int = 0):
        super().__init__(message)
        self.response_size = response_size


class CriticalOracleError(OracleError):
    """The oracle is unusable; retrying cannot help."""

    remediation = "Check the oracle configuration and run the command again."


class OracleUnavailableError(CriticalOracleError):
    remediation = "Install the provider SDK (pip install 'prtasks[anthropic]' or 'prtasks[openai]')."


class OracleAuthenticationError(CriticalOracleError):
    remediation = "Set ANTHROPIC_API_KEY or OPENAI_API_KEY to a valid key for the configured model."


class RateLimitError(OracleError):
    pass


class OracleTimeoutError(OracleError):
    pass


class OracleNetworkError(OracleError):
    pass


class PayloadTooLargeError(OracleError):
    pass


class ResponseParseError(OracleError):
    """The oracle answered but the answer could not be decoded into tasks."""


class TruncatedResponseError(ResponseParseError):
    pass


class MalformedResponseError(ResponseParseError):
    pass


class RepairError(ValueError):
    """Every repair strategy was applied and the text still does not parse."""

    def __init__(self, original: Exception, strategies: list[str]):
        super().__init__(f"JSON repair failed after strategies [{', '.join(strategies)}]: {original}")
        self.original = original
        self.strategies = strategies


class BatchFailedError(Exception):
    """Every comment in a slice failed."""

    def __init__(self, failures: dict[int, Exception]):
        detail = "; ".join(f"comment {cid}: {err}" for cid, err in failures.items())
        super().__init__(f"All {len(failures)} comment(s) in the batch failed: {detail}")
        self.failures = failures


class ProcessingTimeoutError(Exception):
    """The deadline for an incremental run expired; progress is checkpointed."""

    def __init__(self, timeout: float, processed: int, total: int):
        super().__init__(
            f"Processing timed out after {timeout:.0f}s with {processed}/{total} comment(s) done. "
            "Run the command again to resume from the checkpoint."
        )
        self.processed = processed
        self.total = total


class CriticalProcessingError(Exception):
    """A critical oracle error stopped the run; progress is checkpointed."""

    def __init__(self, cause: CriticalOracleError, checkpoint_saved: bool = True):
        hint = cause.remediation
        resume = (
            "Run the command again to resume from the last checkpoint."
            if checkpoint_saved
            else "The checkpoint could not be saved; the next run starts from the last saved state."
        )
        super().__init__(f"Critical error: {cause}. {hint} {resume}")
        self.cause = cause
        self.checkpoint_saved = checkpoint_saved
