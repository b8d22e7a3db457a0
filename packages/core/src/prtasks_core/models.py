"""In-memory data model for the task-generation pipeline.

Review, Comment and Reply mirror what the source-control adapter reads.
CommentContext is the unit of work; TaskCandidate is one unvalidated task
proposed by the oracle. None of these are persisted directly.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Reply:
    id: int
    body: str
    author: str = ""
    created_at: str = ""
    url: str = ""


@dataclass(frozen=True)
class Comment:
    id: int
    body: str
    file: str = ""
    line: int = 0
    author: str = ""
    created_at: str = ""
    url: str = ""
    resolved: bool = False  # thread resolution as reported by the source system
    replies: tuple[Reply, ...] = ()


@dataclass(frozen=True)
class Review:
    id: int
    author: str = ""
    state: str = ""
    body: str = ""
    submitted_at: str = ""
    comments: tuple[Comment, ...] = ()


@dataclass(frozen=True)
class CommentContext:
    """One comment (or review body) plus the review it belongs to."""

    comment: Comment
    review: Review

    @property
    def comment_id(self) -> int:
        return self.comment.id


@dataclass
class TaskCandidate:
    """A task proposed by the oracle for one comment, before identity and dedup."""

    description: str
    origin_text: str
    priority: str
    task_index: int
    source_review_id: int
    source_comment_id: int
    file: str = ""
    line: int = 0
    url: str = ""
    initial_status: str | None = None


@dataclass
class RetryAttempt:
    """One retry decision. Ephemeral; only logged."""

    attempt_number: int
    strategy: str
    category: str
    delay: float
    error: str
    truncation_score: float = 0.0
    prompt_size: int = 0
    response_size: int = 0


@dataclass
class ResponseEvent:
    """Analytics record of one oracle invocation."""

    timestamp: str
    prompt_size: int
    response_size: int
    processing_time_ms: int
    success: bool
    error_type: str = ""
    recovery_used: bool = False
    retry_count: int = 0
    truncation_score: float = 0.0
    tasks_extracted: int = 0
    prompt_optimized: bool = False
    session_id: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> ResponseEvent:
        return cls(
            timestamp=d.get("timestamp", ""),
            prompt_size=d.get("prompt_size", 0),
            response_size=d.get("response_size", 0),
            processing_time_ms=d.get("processing_time_ms", 0),
            success=bool(d.get("success", False)),
            error_type=d.get("error_type", ""),
            recovery_used=bool(d.get("recovery_used", False)),
            retry_count=d.get("retry_count", 0),
            truncation_score=d.get("truncation_score", 0.0),
            tasks_extracted=d.get("tasks_extracted", 0),
            prompt_optimized=bool(d.get("prompt_optimized", False)),
            session_id=d.get("session_id", ""),
        )
