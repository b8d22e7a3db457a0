"""Two-tier task deduplication.

The lexical tier drops near-identical tasks split out of the same comment.
The semantic tier asks the oracle which tasks across the whole set describe
the same work, sending only compact summaries. If the semantic tier fails
for any reason, every task is kept.
"""

from __future__ import annotations

import json
import logging

from prtasks_store.models import PersistedTask

from prtasks_core.errors import OracleError
from prtasks_core.prompts import build_dedup_prompt
from prtasks_core.repair import repair_json
from prtasks_core.response import extract_json_payload

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lower-cased word sets."""
    words_a, words_b = set(a.lower().split()), set(b.lower().split())
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def _dedup_group(tasks: list[PersistedTask], threshold: float) -> list[PersistedTask]:
    ordered = sorted(tasks, key=lambda t: (PRIORITY_ORDER.get(t.priority, 2), t.task_index))
    kept: list[PersistedTask] = []
    for task in ordered:
        match = next((k for k in kept if similarity(k.description, task.description) >= threshold), None)
        if match is None:
            kept.append(task)
        else:
            logger.debug("Dropping %r: similar to %r", task.description, match.description)
    return kept


def dedup_within_comments(tasks: list[PersistedTask], threshold: float = 0.8) -> list[PersistedTask]:
    """Lexical tier. Higher priority wins; result keeps the input order."""
    by_comment: dict[int, list[PersistedTask]] = {}
    for task in tasks:
        by_comment.setdefault(task.source_comment_id, []).append(task)

    keep_ids = set()
    for group in by_comment.values():
        keep_ids.update(t.id for t in _dedup_group(group, threshold))
    return [t for t in tasks if t.id in keep_ids]


def _id_list(value, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{field_name} must be a list of task ids")
    return value


class SemanticDeduplicator:
    """Oracle-backed tier over the whole task set."""

    def __init__(self, oracle):
        self.oracle = oracle

    def deduplicate(self, tasks: list[PersistedTask]) -> list[PersistedTask]:
        if len(tasks) < 2:
            return tasks
        summaries = [
            {
                "id": t.id,
                "description": t.description,
                "comment_id": t.source_comment_id,
                "priority": t.priority,
            }
            for t in tasks
        ]
        try:
            raw = self.oracle.invoke(build_dedup_prompt(summaries), output_format="json")
            verdict = self._parse(raw)
            removed = self._removals(verdict, {t.id for t in tasks})
        except (OracleError, ValueError, TypeError) as e:
            logger.warning("Semantic deduplication failed, keeping all %d task(s): %s", len(tasks), e)
            return tasks

        result = [t for t in tasks if t.id not in removed]
        if removed:
            logger.info("Semantic deduplication removed %d task(s): %s", len(tasks) - len(result), verdict.get("reasoning", ""))
        return result

    @staticmethod
    def _removals(verdict: dict, ids: set[str]) -> set[str]:
        """Ids to drop. A group's primary is never dropped, even if another group lists it."""
        unique = _id_list(verdict.get("unique_task_ids"), "unique_task_ids")
        groups = verdict.get("duplicate_groups") or []
        if not isinstance(groups, list) or not all(isinstance(g, dict) for g in groups):
            raise ValueError("duplicate_groups must be a list of objects")

        pairs = []
        for group in groups:
            primary = group.get("primary_task_id")
            duplicates = _id_list(group.get("duplicate_task_ids"), "duplicate_task_ids")
            if isinstance(primary, str) and primary in ids:
                pairs.append((primary, duplicates))

        primaries = {primary for primary, _ in pairs}
        removed = set()
        for primary, duplicates in pairs:
            removed.update(d for d in duplicates if d not in primaries and d not in unique)
        return removed

    @staticmethod
    def _parse(raw: str) -> dict:
        payload = extract_json_payload(raw or "")
        if payload is None:
            raise ValueError("deduplication response contains no JSON")
        data = json.loads(repair_json(payload))
        if not isinstance(data, dict):
            raise ValueError(f"deduplication response is a {type(data).__name__}, expected an object")
        return data


def deduplicate_tasks(tasks: list[PersistedTask], config: dict, oracle=None) -> list[PersistedTask]:
    if config.get("deduplication_enabled", True):
        tasks = dedup_within_comments(tasks, config.get("similarity_threshold", 0.8))
    if config.get("semantic_dedup", True) and oracle is not None:
        tasks = SemanticDeduplicator(oracle).deduplicate(tasks)
    return tasks
