"""Tests for lexical and semantic task deduplication."""

import json
from unittest.mock import MagicMock

import pytest

from prtasks_store.models import PersistedTask

from prtasks_core.dedup import SemanticDeduplicator, dedup_within_comments, deduplicate_tasks, similarity
from prtasks_core.errors import RateLimitError


def _task(task_id, description, comment_id=10, priority="medium", index=0):
    return PersistedTask(
        id=task_id,
        description=description,
        origin_text="",
        priority=priority,
        source_review_id=1,
        source_comment_id=comment_id,
        task_index=index,
    )


def _oracle(verdict):
    oracle = MagicMock()
    oracle.invoke.return_value = verdict if isinstance(verdict, str) else json.dumps(verdict)
    return oracle


class TestSimilarity:
    def test_identical(self):
        assert similarity("Add a null check", "add a NULL check") == 1.0

    def test_disjoint(self):
        assert similarity("rename foo", "add tests") == 0.0

    def test_partial(self):
        assert similarity("a b c", "a b d") == 0.5

    def test_both_empty(self):
        assert similarity("", "") == 1.0


class TestDedupWithinComments:
    def test_higher_priority_wins(self):
        tasks = [
            _task("low", "Add a null check here", priority="low", index=0),
            _task("high", "Add a null check here", priority="high", index=1),
        ]
        assert [t.id for t in dedup_within_comments(tasks)] == ["high"]

    def test_different_comments_not_merged(self):
        tasks = [_task("a", "Add a null check", comment_id=10), _task("b", "Add a null check", comment_id=11)]
        assert len(dedup_within_comments(tasks)) == 2

    def test_distinct_tasks_kept_in_input_order(self):
        tasks = [_task("b", "Write a test", index=1), _task("a", "Rename the helper", index=0)]
        assert [t.id for t in dedup_within_comments(tasks)] == ["b", "a"]

    def test_threshold(self):
        tasks = [_task("a", "a b c", index=0), _task("b", "a b d", index=1)]
        assert len(dedup_within_comments(tasks, threshold=0.5)) == 1
        assert len(dedup_within_comments(tasks, threshold=0.8)) == 2


class TestSemanticDeduplicator:
    def setup_method(self):
        self.tasks = [
            _task("a", "Validate input", comment_id=10),
            _task("b", "Check the input is valid", comment_id=11),
            _task("c", "Add a changelog entry", comment_id=12),
        ]

    def test_removes_duplicates(self):
        oracle = _oracle(
            {
                "unique_task_ids": ["a", "c"],
                "duplicate_groups": [{"primary_task_id": "a", "duplicate_task_ids": ["b"], "reason": "same"}],
                "reasoning": "b repeats a",
            }
        )
        assert [t.id for t in SemanticDeduplicator(oracle).deduplicate(self.tasks)] == ["a", "c"]

    def test_sends_only_summaries(self):
        oracle = _oracle({"unique_task_ids": ["a", "b", "c"], "duplicate_groups": []})
        SemanticDeduplicator(oracle).deduplicate(self.tasks)
        prompt = oracle.invoke.call_args.args[0]
        assert '"comment_id": 11' in prompt
        assert "origin_text" not in prompt

    def test_unknown_primary_ignored(self):
        oracle = _oracle({"duplicate_groups": [{"primary_task_id": "zzz", "duplicate_task_ids": ["b"]}]})
        assert len(SemanticDeduplicator(oracle).deduplicate(self.tasks)) == 3

    def test_task_listed_as_unique_is_kept(self):
        oracle = _oracle(
            {"unique_task_ids": ["a", "b", "c"], "duplicate_groups": [{"primary_task_id": "a", "duplicate_task_ids": ["b"]}]}
        )
        assert len(SemanticDeduplicator(oracle).deduplicate(self.tasks)) == 3

    def test_fenced_answer_accepted(self):
        verdict = json.dumps({"duplicate_groups": [{"primary_task_id": "a", "duplicate_task_ids": ["b"]}]})
        oracle = _oracle(f"```json\n{verdict}\n```")
        assert [t.id for t in SemanticDeduplicator(oracle).deduplicate(self.tasks)] == ["a", "c"]

    def test_oracle_failure_keeps_everything(self):
        oracle = MagicMock()
        oracle.invoke.side_effect = RateLimitError("429")
        assert SemanticDeduplicator(oracle).deduplicate(self.tasks) == self.tasks

    def test_unparseable_answer_keeps_everything(self):
        assert SemanticDeduplicator(_oracle("no idea")).deduplicate(self.tasks) == self.tasks

    def test_array_answer_keeps_everything(self):
        assert SemanticDeduplicator(_oracle([])).deduplicate(self.tasks) == self.tasks

    @pytest.mark.parametrize(
        "verdict",
        [
            {"duplicate_groups": ["a", "b"]},
            {"duplicate_groups": {"primary_task_id": "a"}},
            {"duplicate_groups": [{"primary_task_id": "a", "duplicate_task_ids": "b"}]},
            {"duplicate_groups": [{"primary_task_id": "a", "duplicate_task_ids": [["b"]]}]},
            {"unique_task_ids": [{"id": "a"}], "duplicate_groups": []},
        ],
    )
    def test_off_shape_verdict_keeps_everything(self, verdict):
        assert SemanticDeduplicator(_oracle(verdict)).deduplicate(self.tasks) == self.tasks

    def test_mutual_groups_keep_both_primaries(self):
        oracle = _oracle(
            {
                "duplicate_groups": [
                    {"primary_task_id": "a", "duplicate_task_ids": ["b"]},
                    {"primary_task_id": "b", "duplicate_task_ids": ["a", "c"]},
                ]
            }
        )
        assert [t.id for t in SemanticDeduplicator(oracle).deduplicate(self.tasks)] == ["a", "b"]

    def test_single_task_skips_oracle(self):
        oracle = MagicMock()
        SemanticDeduplicator(oracle).deduplicate(self.tasks[:1])
        oracle.invoke.assert_not_called()


class TestDeduplicateTasks:
    def test_lexical_disabled(self):
        tasks = [_task("a", "same words", index=0), _task("b", "same words", index=1)]
        assert len(deduplicate_tasks(tasks, {"deduplication_enabled": False, "semantic_dedup": False})) == 2

    def test_semantic_skipped_without_oracle(self):
        tasks = [_task("a", "one", comment_id=1), _task("b", "two", comment_id=2)]
        assert deduplicate_tasks(tasks, {"semantic_dedup": True}, oracle=None) == tasks

    def test_semantic_disabled(self):
        oracle = MagicMock()
        tasks = [_task("a", "one", comment_id=1), _task("b", "two", comment_id=2)]
        deduplicate_tasks(tasks, {"semantic_dedup": False}, oracle=oracle)
        oracle.invoke.assert_not_called()
