"""Deterministic task identity and status assignment."""

from __future__ import annotations

import hashlib
import uuid

from prtasks_store.models import PersistedTask, utc_now

from prtasks_core.classify import is_low_priority
from prtasks_core.models import Comment, TaskCandidate


def normalize_content(text: str) -> str:
    return (text or "").replace("\r\n", "\n").strip()


def task_id(comment_id: int, task_index: int, content: str) -> str:
    """UUIDv5 over (comment id, task index, normalised comment content).

    Same inputs always give the same id; any content change gives a new one.
    """
    digest = hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()[:16]
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"comment-{comment_id}-task-{task_index}-content-{digest}"))


def comment_fingerprint(comment: Comment) -> str:
    """SHA-256 over the comment body and every reply body."""
    h = hashlib.sha256(comment.body.encode("utf-8"))
    for reply in comment.replies:
        h.update(b"\x00")
        h.update(reply.body.encode("utf-8"))
    return h.hexdigest()


def resolve_status(candidate: TaskCandidate, low_priority: bool, config: dict) -> str:
    if candidate.initial_status:
        return candidate.initial_status
    if low_priority:
        return config.get("low_priority_status", "pending")
    return config.get("default_status", "todo")


def assign_identity(candidates: list[TaskCandidate], config: dict, pr_number: int = 0) -> list[PersistedTask]:
    """Turn candidates into PersistedTasks with stable ids, statuses and priorities."""
    patterns = config.get("low_priority_patterns", [])
    now = utc_now()
    tasks = []
    for c in candidates:
        low_priority = is_low_priority(c.origin_text, patterns)
        priority = c.priority
        if low_priority and config.get("process_nitpick_comments", True):
            priority = config.get("nitpick_priority", "low")
        tasks.append(
            PersistedTask(
                id=task_id(c.source_comment_id, c.task_index, c.origin_text),
                description=c.description,
                origin_text=c.origin_text,
                priority=priority,
                source_review_id=c.source_review_id,
                source_comment_id=c.source_comment_id,
                task_index=c.task_index,
                file=c.file,
                line=c.line,
                status=resolve_status(c, low_priority, config),
                created_at=now,
                updated_at=now,
                pr_number=pr_number,
                url=c.url,
            )
        )
    return tasks
