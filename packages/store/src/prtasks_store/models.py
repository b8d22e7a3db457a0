"""Durable task and checkpoint records.

Kept in the store package so every backend serialises the same shapes and
prtasks_core can depend on these types without depending on a backend.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

TASK_STATUSES = ("todo", "doing", "done", "pending", "cancelled")


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class PersistedTask:
    """One actionable task derived from a review comment.

    ``id`` is a pure function of (comment id, task index, comment content),
    so a re-run over an unchanged comment writes to the same record.
    """

    id: str
    description: str
    origin_text: str
    priority: str
    source_review_id: int
    source_comment_id: int
    task_index: int
    file: str = ""
    line: int = 0
    status: str = "todo"
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    pr_number: int = 0
    url: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> PersistedTask:
        return cls(
            id=d.get("id", ""),
            description=d.get("description", ""),
            origin_text=d.get("origin_text", ""),
            priority=d.get("priority", "medium"),
            source_review_id=d.get("source_review_id", 0),
            source_comment_id=d.get("source_comment_id", 0),
            task_index=d.get("task_index", 0),
            file=d.get("file", ""),
            line=d.get("line", 0),
            status=d.get("status", "todo"),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
            pr_number=d.get("pr_number", 0),
            url=d.get("url", ""),
        )


@dataclass
class CheckpointState:
    """Progress of one incremental run over a PR's comments.

    ``processed_comments`` maps comment id to the content fingerprint the
    comment had when it was processed. An entry only counts as done while
    the fingerprint still matches the comment's current content.
    """

    pr_number: int
    total_comments: int
    processed_comments: dict[int, str] = field(default_factory=dict)
    processed_count: int = 0
    batch_size: int = 0
    partial_tasks: list[PersistedTask] = field(default_factory=list)
    started_at: str = field(default_factory=utc_now)
    last_processed_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "pr_number": self.pr_number,
            "total_comments": self.total_comments,
            # JSON object keys are strings; from_dict converts them back.
            "processed_comments": {str(k): v for k, v in self.processed_comments.items()},
            "processed_count": self.processed_count,
            "batch_size": self.batch_size,
            "partial_tasks": [t.to_dict() for t in self.partial_tasks],
            "started_at": self.started_at,
            "last_processed_at": self.last_processed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> CheckpointState:
        return cls(
            pr_number=d.get("pr_number", 0),
            total_comments=d.get("total_comments", 0),
            processed_comments={int(k): v for k, v in (d.get("processed_comments") or {}).items()},
            processed_count=d.get("processed_count", 0),
            batch_size=d.get("batch_size", 0),
            partial_tasks=[PersistedTask.from_dict(t) for t in d.get("partial_tasks") or []],
            started_at=d.get("started_at", ""),
            last_processed_at=d.get("last_processed_at", ""),
        )


def parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_checkpoint_stale(state: CheckpointState | None, max_age_seconds: float) -> bool:
    """Return True when the checkpoint is missing or older than max_age_seconds.

    Age is measured from the last write, so a long run that keeps saving
    progress does not expire halfway through.
    """
    if state is None:
        return True
    last = parse_timestamp(state.last_processed_at) or parse_timestamp(state.started_at)
    if last is None:
        return True
    return (datetime.now(timezone.utc) - last).total_seconds() > max_age_seconds
