"""Tests for prtasks-store implementations."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from prtasks_store.file import FileStore
from prtasks_store.models import CheckpointState, PersistedTask, is_checkpoint_stale
from prtasks_store.sqlite import SQLiteStore


def _task(task_id="t1", comment_id=10, index=0, description="Add a null check", status="todo"):
    return PersistedTask(
        id=task_id,
        description=description,
        origin_text="nit: add a null check",
        priority="medium",
        source_review_id=1,
        source_comment_id=comment_id,
        task_index=index,
        file="src/app.py",
        line=42,
        status=status,
    )


def _hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    if request.param == "file":
        s = FileStore(base_dir=str(tmp_path / ".pr-review"))
    else:
        s = SQLiteStore(db_path=str(tmp_path / "tasks.db"))
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Task persistence (every backend)
# ---------------------------------------------------------------------------


class TestMergeTasks:
    def test_merge_and_list(self, store):
        store.merge_tasks(7, [_task("a"), _task("b", index=1)])

        tasks = store.list_tasks(7)
        assert {t.id for t in tasks} == {"a", "b"}
        assert all(t.pr_number == 7 for t in tasks)

    def test_same_id_is_an_update_not_a_duplicate(self, store):
        store.merge_tasks(7, [_task("a", description="first wording")])
        store.merge_tasks(7, [_task("a", description="second wording")])

        tasks = store.list_tasks(7)
        assert len(tasks) == 1
        assert tasks[0].description == "second wording"

    def test_existing_status_and_created_at_survive_rerun(self, store):
        store.merge_tasks(7, [_task("a")])
        store.update_status(7, "a", "doing")
        created = store.list_tasks(7)[0].created_at

        store.merge_tasks(7, [_task("a")])

        task = store.list_tasks(7)[0]
        assert task.status == "doing"
        assert task.created_at == created

    def test_stale_task_of_edited_comment_is_cancelled(self, store):
        store.merge_tasks(7, [_task("old", comment_id=10)])
        store.merge_tasks(7, [_task("new", comment_id=10)])

        by_id = {t.id: t for t in store.list_tasks(7)}
        assert by_id["old"].status == "cancelled"
        assert by_id["new"].status == "todo"

    def test_done_task_is_not_cancelled(self, store):
        store.merge_tasks(7, [_task("old", comment_id=10)])
        store.update_status(7, "old", "done")
        store.merge_tasks(7, [_task("new", comment_id=10)])

        by_id = {t.id: t for t in store.list_tasks(7)}
        assert by_id["old"].status == "done"

    def test_other_comments_untouched(self, store):
        store.merge_tasks(7, [_task("a", comment_id=10), _task("b", comment_id=11)])
        store.merge_tasks(7, [_task("c", comment_id=10)])

        by_id = {t.id: t for t in store.list_tasks(7)}
        assert by_id["b"].status == "todo"
        assert by_id["a"].status == "cancelled"

    def test_list_tasks_filters_by_pr(self, store):
        store.merge_tasks(1, [_task("a")])
        store.merge_tasks(2, [_task("b")])

        assert [t.id for t in store.list_tasks(1)] == ["a"]
        assert {t.id for t in store.list_tasks()} == {"a", "b"}

    def test_list_tasks_empty_for_unknown_pr(self, store):
        assert store.list_tasks(99) == []

    def test_update_status_unknown_id_raises(self, store):
        store.merge_tasks(7, [_task("a")])
        with pytest.raises(KeyError):
            store.update_status(7, "missing", "done")


# ---------------------------------------------------------------------------
# Checkpoints (every backend)
# ---------------------------------------------------------------------------


class TestCheckpoints:
    def test_save_and_load_round_trip(self, store):
        state = CheckpointState(pr_number=7, total_comments=3, processed_comments={10: "abc"}, partial_tasks=[_task()])
        store.save_checkpoint(7, state)

        loaded = store.load_checkpoint(7)
        assert loaded.processed_comments == {10: "abc"}
        assert loaded.partial_tasks[0].id == "t1"
        assert loaded.total_comments == 3

    def test_load_missing_returns_none(self, store):
        assert store.load_checkpoint(7) is None

    def test_delete(self, store):
        store.save_checkpoint(7, CheckpointState(pr_number=7, total_comments=1))
        store.delete_checkpoint(7)
        assert store.load_checkpoint(7) is None

    def test_delete_missing_is_not_an_error(self, store):
        store.delete_checkpoint(7)

    def test_save_stamps_last_processed_at(self, store):
        state = CheckpointState(pr_number=7, total_comments=1, last_processed_at=_hours_ago(48))
        store.save_checkpoint(7, state)
        assert not is_checkpoint_stale(store.load_checkpoint(7), 24 * 3600)


# ---------------------------------------------------------------------------
# Backend specifics
# ---------------------------------------------------------------------------


class TestFileStore:
    def test_layout(self, tmp_path):
        store = FileStore(base_dir=str(tmp_path))
        store.merge_tasks(5, [_task()])
        store.save_checkpoint(5, CheckpointState(pr_number=5, total_comments=1))

        data = json.loads((tmp_path / "PR-5" / "tasks.json").read_text())
        assert "generated_at" in data
        assert data["tasks"][0]["id"] == "t1"
        assert (tmp_path / "PR-5" / "checkpoint.json").exists()

    def test_corrupt_checkpoint_is_ignored(self, tmp_path):
        (tmp_path / "PR-5").mkdir()
        (tmp_path / "PR-5" / "checkpoint.json").write_text("{not json")

        assert FileStore(base_dir=str(tmp_path)).load_checkpoint(5) is None

    def test_checkpoint_keys_are_ints_after_reload(self, tmp_path):
        store = FileStore(base_dir=str(tmp_path))
        store.save_checkpoint(5, CheckpointState(pr_number=5, total_comments=1, processed_comments={123: "fp"}))

        raw = json.loads((tmp_path / "PR-5" / "checkpoint.json").read_text())
        assert raw["processed_comments"] == {"123": "fp"}
        assert store.load_checkpoint(5).processed_comments == {123: "fp"}


class TestSQLiteStore:
    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "tasks.db")
        store = SQLiteStore(db_path=db)
        store.merge_tasks(7, [_task()])
        store.close()

        reopened = SQLiteStore(db_path=db)
        assert [t.id for t in reopened.list_tasks(7)] == ["t1"]
        reopened.close()

    def test_creates_parent_directory(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "nested" / "tasks.db"))
        store.close()
        assert (tmp_path / "nested" / "tasks.db").exists()


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


class TestCheckpointStaleness:
    def test_none_is_stale(self):
        assert is_checkpoint_stale(None, 3600)

    def test_fresh(self):
        state = CheckpointState(pr_number=1, total_comments=1, last_processed_at=_hours_ago(1))
        assert not is_checkpoint_stale(state, 24 * 3600)

    def test_old(self):
        state = CheckpointState(pr_number=1, total_comments=1, last_processed_at=_hours_ago(25))
        assert is_checkpoint_stale(state, 24 * 3600)

    def test_falls_back_to_started_at(self):
        state = CheckpointState(pr_number=1, total_comments=1, started_at=_hours_ago(30), last_processed_at="")
        assert is_checkpoint_stale(state, 24 * 3600)

    def test_unparseable_timestamps_are_stale(self):
        state = CheckpointState(pr_number=1, total_comments=1, started_at="garbage", last_processed_at="garbage")
        assert is_checkpoint_stale(state, 24 * 3600)
