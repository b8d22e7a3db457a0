"""Decode raw oracle output into task candidates.

The oracle answers in one of a few shapes. Each shape is tried in a fixed
order and normalised to a plain list of task dicts; anything else is an
error rather than a guess.
"""

from __future__ import annotations

import json
import logging
import re

from prtasks_store.models import TASK_STATUSES

from prtasks_core.errors import MalformedResponseError, RepairError, TruncatedResponseError
from prtasks_core.models import CommentContext, TaskCandidate
from prtasks_core.repair import repair_json, unclosed_structure

logger = logging.getLogger(__name__)

PRIORITIES = ("critical", "high", "medium", "low")

# Prose answers that mean "nothing to do" rather than a failed response.
EMPTY_RESPONSE_PATTERNS: tuple[str, ...] = (
    "no actionable tasks",
    "no tasks needed",
    "no tasks required",
    "empty array",
    "no action required",
    "no action needed",
    "already resolved",
    "already addressed",
    "no implementation needed",
)

_FENCED_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)(?:```|\Z)", re.DOTALL)


def extract_json_payload(raw: str) -> str | None:
    text = raw.strip()
    if text.startswith(("[", "{")):
        return text
    fenced = _FENCED_RE.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if starts:
        return text[min(starts) :]
    return None


def _is_empty_answer(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in EMPTY_RESPONSE_PATTERNS)


def _parse(payload: str, raw_size: int) -> tuple[object, bool]:
    try:
        return json.loads(payload), False
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair_json(payload)), True
    except RepairError as e:
        stack, in_string = unclosed_structure(payload)
        if stack or in_string:
            raise TruncatedResponseError(f"Response cut off mid-structure: {e.original}", raw_size) from e
        raise MalformedResponseError(f"Response is not valid JSON: {e.original}", raw_size) from e


def _shape_items(data: object, raw_size: int) -> tuple[list[dict], bool]:
    """Match ``data`` against the known shapes, in priority order."""
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)], False
    if isinstance(data, dict):
        if isinstance(data.get("tasks"), list):
            return [item for item in data["tasks"] if isinstance(item, dict)], False
        if "result" in data:
            result = data["result"]
            if isinstance(result, str):
                return decode_task_response(result)
            if isinstance(result, list):
                return [item for item in result if isinstance(item, dict)], False
        if "description" in data:
            return [data], False
    raise MalformedResponseError(f"Unrecognised response shape: {type(data).__name__}", raw_size)


def decode_task_response(raw: str) -> tuple[list[dict], bool]:
    """Return ``(task_dicts, recovery_used)`` for one oracle response.

    ``recovery_used`` is True when Response Repair was needed to parse it.
    Raises TruncatedResponseError or MalformedResponseError.
    """
    raw = raw or ""
    size = len(raw)
    payload = extract_json_payload(raw)
    if payload is None:
        if not raw.strip() or _is_empty_answer(raw):
            return [], False
        raise MalformedResponseError("Response contains no JSON", size)

    try:
        data, recovered = _parse(payload, size)
    except MalformedResponseError:
        if _is_empty_answer(raw):
            return [], False
        raise

    items, nested_recovered = _shape_items(data, size)
    return items, recovered or nested_recovered


def to_candidates(items: list[dict], context: CommentContext) -> list[TaskCandidate]:
    """Normalise decoded task dicts into TaskCandidates for one comment.

    Only ``description``, ``priority`` and ``initial_status`` (or ``status``)
    are read. Items without a description are dropped.
    """
    comment = context.comment
    candidates: list[TaskCandidate] = []
    for item in items:
        description = str(item.get("description") or "").strip()
        if not description:
            logger.debug("Dropping task without description for comment %d", comment.id)
            continue
        priority = str(item.get("priority") or "").lower()
        if priority not in PRIORITIES:
            priority = "medium"
        status = str(item.get("initial_status") or item.get("status") or "").lower()
        candidates.append(
            TaskCandidate(
                description=description,
                origin_text=comment.body,
                priority=priority,
                task_index=len(candidates),
                source_review_id=context.review.id,
                source_comment_id=comment.id,
                file=comment.file,
                line=comment.line,
                url=comment.url,
                initial_status=status if status in TASK_STATUSES else None,
            )
        )
    return candidates
