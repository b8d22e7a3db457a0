from __future__ import annotations

from datetime import datetime

from github import Github

from prtasks_core.models import Comment, Reply, Review


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def _login(user) -> str:
    return getattr(user, "login", "") or ""


def _iso(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value or "")


def _line(comment) -> int:
    return comment.line or getattr(comment, "original_line", None) or 0


def fetch_reviews(pr) -> list[Review]:
    """Read a PR's reviews and inline comments into Review records.

    Replies are grouped under the comment they answer (``in_reply_to_id``);
    each root comment is attached to its review (``pull_request_review_id``).
    Root comments whose review is not returned get a placeholder review.
    """
    raw_comments = list(pr.get_review_comments())

    replies: dict[int, list[Reply]] = {}
    for c in raw_comments:
        if c.in_reply_to_id:
            replies.setdefault(c.in_reply_to_id, []).append(
                Reply(id=c.id, body=c.body or "", author=_login(c.user), created_at=_iso(c.created_at), url=c.html_url)
            )

    by_review: dict[int, list[Comment]] = {}
    authors: dict[int, str] = {}
    for c in raw_comments:
        if c.in_reply_to_id:
            continue
        review_id = getattr(c, "pull_request_review_id", None) or 0
        authors.setdefault(review_id, _login(c.user))
        by_review.setdefault(review_id, []).append(
            Comment(
                id=c.id,
                body=c.body or "",
                file=c.path or "",
                line=_line(c),
                author=_login(c.user),
                created_at=_iso(c.created_at),
                url=c.html_url,
                replies=tuple(replies.get(c.id, ())),
            )
        )

    reviews = []
    for r in pr.get_reviews():
        reviews.append(
            Review(
                id=r.id,
                author=_login(r.user),
                state=r.state or "",
                body=r.body or "",
                submitted_at=_iso(r.submitted_at),
                comments=tuple(by_review.pop(r.id, ())),
            )
        )
    for review_id, comments in by_review.items():
        reviews.append(Review(id=review_id, author=authors.get(review_id, ""), comments=tuple(comments)))
    return reviews
