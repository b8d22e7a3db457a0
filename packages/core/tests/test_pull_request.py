"""Tests for GitHub pull request helper functions."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from prtasks_core.gh.pull_request import fetch_reviews, get_pull

WHEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _user(login):
    return SimpleNamespace(login=login)


def _comment(cid, body, review_id=1, reply_to=None, path="app.py", line=10, original_line=None):
    return SimpleNamespace(
        id=cid,
        body=body,
        user=_user("alice"),
        created_at=WHEN,
        html_url=f"https://github.com/o/r/pull/1#discussion_r{cid}",
        path=path,
        line=line,
        original_line=original_line,
        in_reply_to_id=reply_to,
        pull_request_review_id=review_id,
    )


def _review(rid, body="", state="COMMENTED"):
    return SimpleNamespace(id=rid, user=_user("bob"), state=state, body=body, submitted_at=WHEN)


def _pr(comments, reviews):
    pr = MagicMock()
    pr.get_review_comments.return_value = comments
    pr.get_reviews.return_value = reviews
    return pr


class TestFetchReviews:
    def test_attaches_comments_to_their_review(self):
        pr = _pr([_comment(10, "fix"), _comment(11, "also", review_id=2)], [_review(1), _review(2)])

        reviews = fetch_reviews(pr)

        assert [r.id for r in reviews] == [1, 2]
        assert [c.id for c in reviews[0].comments] == [10]
        assert [c.id for c in reviews[1].comments] == [11]

    def test_replies_grouped_under_root(self):
        pr = _pr(
            [_comment(10, "fix"), _comment(12, "Fixed in commit abc", reply_to=10)],
            [_review(1)],
        )

        comments = fetch_reviews(pr)[0].comments

        assert len(comments) == 1
        comment = comments[0]
        assert comment.replies[0].id == 12
        assert comment.replies[0].body == "Fixed in commit abc"

    def test_orphan_comments_get_placeholder_review(self):
        pr = _pr([_comment(10, "fix", review_id=99)], [_review(1)])

        reviews = fetch_reviews(pr)

        placeholder = reviews[-1]
        assert placeholder.id == 99
        assert placeholder.author == "alice"
        assert [c.id for c in placeholder.comments] == [10]

    def test_review_fields_mapped(self):
        pr = _pr([], [_review(1, body="Please address the notes", state="CHANGES_REQUESTED")])

        review = fetch_reviews(pr)[0]

        assert review.body == "Please address the notes"
        assert review.state == "CHANGES_REQUESTED"
        assert review.author == "bob"
        assert review.submitted_at == "2024-05-01T12:00:00Z"

    def test_falls_back_to_original_line(self):
        pr = _pr([_comment(10, "outdated", line=None, original_line=7)], [_review(1)])
        assert fetch_reviews(pr)[0].comments[0].line == 7

    def test_none_body_becomes_empty(self):
        pr = _pr([_comment(10, None)], [_review(1, body=None)])
        review = fetch_reviews(pr)[0]
        assert review.body == ""
        assert review.comments[0].body == ""

    def test_no_reviews(self):
        assert fetch_reviews(_pr([], [])) == []


def test_get_pull_delegates_to_repo():
    repo = MagicMock()
    get_pull(repo, 42)
    repo.get_pull.assert_called_once_with(42)
