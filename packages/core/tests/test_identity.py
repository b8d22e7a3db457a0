"""Tests for task identity, fingerprints and status assignment."""

from prtasks_core.config import DEFAULT_CONFIG
from prtasks_core.identity import assign_identity, comment_fingerprint, resolve_status, task_id
from prtasks_core.models import Comment, Reply, TaskCandidate


def _candidate(origin="Handle the None case", index=0, priority="high", status=None, comment_id=10):
    return TaskCandidate(
        description="Add a None check",
        origin_text=origin,
        priority=priority,
        task_index=index,
        source_review_id=1,
        source_comment_id=comment_id,
        file="app.py",
        line=3,
        initial_status=status,
    )


class TestTaskId:
    def test_deterministic(self):
        assert task_id(10, 0, "Fix it") == task_id(10, 0, "Fix it")

    def test_line_endings_and_outer_whitespace_ignored(self):
        assert task_id(10, 0, "Fix it\r\nplease  ") == task_id(10, 0, "Fix it\nplease")

    def test_content_change_gives_new_id(self):
        assert task_id(10, 0, "Fix it") != task_id(10, 0, "Fix it now")

    def test_index_and_comment_matter(self):
        assert task_id(10, 0, "Fix it") != task_id(10, 1, "Fix it")
        assert task_id(10, 0, "Fix it") != task_id(11, 0, "Fix it")


class TestCommentFingerprint:
    def test_stable(self):
        comment = Comment(id=10, body="Fix it")
        assert comment_fingerprint(comment) == comment_fingerprint(Comment(id=10, body="Fix it"))

    def test_body_edit_changes_fingerprint(self):
        assert comment_fingerprint(Comment(id=10, body="Fix it")) != comment_fingerprint(Comment(id=10, body="Fix this"))

    def test_new_reply_changes_fingerprint(self):
        before = Comment(id=10, body="Fix it")
        after = Comment(id=10, body="Fix it", replies=(Reply(id=11, body="Done"),))
        assert comment_fingerprint(before) != comment_fingerprint(after)


class TestResolveStatus:
    def test_oracle_status_wins(self):
        assert resolve_status(_candidate(status="doing"), True, DEFAULT_CONFIG) == "doing"

    def test_low_priority_status(self):
        assert resolve_status(_candidate(), True, DEFAULT_CONFIG) == "pending"

    def test_default_status(self):
        assert resolve_status(_candidate(), False, {**DEFAULT_CONFIG, "default_status": "doing"}) == "doing"


class TestAssignIdentity:
    def test_regular_task(self):
        task = assign_identity([_candidate()], DEFAULT_CONFIG, pr_number=7)[0]
        assert task.id == task_id(10, 0, "Handle the None case")
        assert task.status == "todo"
        assert task.priority == "high"
        assert task.pr_number == 7
        assert task.file == "app.py"

    def test_nitpick_gets_nitpick_priority_and_low_status(self):
        task = assign_identity([_candidate(origin="nit: rename x")], DEFAULT_CONFIG)[0]
        assert task.priority == "low"
        assert task.status == "pending"

    def test_nitpick_priority_untouched_when_nitpicks_not_processed(self):
        config = {**DEFAULT_CONFIG, "process_nitpick_comments": False}
        task = assign_identity([_candidate(origin="nit: rename x")], config)[0]
        assert task.priority == "high"

    def test_same_candidates_same_ids(self):
        first = assign_identity([_candidate(), _candidate(index=1)], DEFAULT_CONFIG)
        second = assign_identity([_candidate(), _candidate(index=1)], DEFAULT_CONFIG)
        assert [t.id for t in first] == [t.id for t in second]
        assert len({t.id for t in first}) == 2
