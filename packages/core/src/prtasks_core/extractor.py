"""Flatten reviews into the comment contexts the pipeline works on."""

from __future__ import annotations

import logging

from prtasks_core.classify import is_nitpick_only, is_resolved
from prtasks_core.models import Comment, CommentContext, Review

logger = logging.getLogger(__name__)


def _review_body_comment(review: Review) -> Comment:
    # A review body has no file or line; it borrows the review id.
    return Comment(
        id=review.id,
        body=review.body,
        author=review.author,
        created_at=review.submitted_at,
    )


def _keep(comment: Comment, config: dict) -> tuple[bool, bool]:
    """Return (keep, was_resolved) for one comment."""
    if is_resolved(comment.resolved, comment.body, (r.body for r in comment.replies)):
        return False, True
    if not config.get("process_nitpick_comments", True) and is_nitpick_only(
        comment.body, config.get("low_priority_patterns", [])
    ):
        return False, False
    return True, False


def extract_comments(reviews: list[Review], config: dict) -> list[CommentContext]:
    """Return every unresolved, in-scope comment as a CommentContext.

    Order follows the reviews: each review's body (if non-empty) first, then
    its inline comments in the order they were given.
    """
    contexts: list[CommentContext] = []
    resolved = 0
    nitpicks = 0

    for review in reviews:
        candidates = []
        if (review.body or "").strip():
            candidates.append(_review_body_comment(review))
        candidates.extend(review.comments)

        for comment in candidates:
            keep, was_resolved = _keep(comment, config)
            if keep:
                contexts.append(CommentContext(comment=comment, review=review))
            elif was_resolved:
                resolved += 1
            else:
                nitpicks += 1

    if resolved:
        logger.info("Filtered out %d resolved comment(s)", resolved)
    if nitpicks:
        logger.info("Skipped %d nitpick-only comment(s)", nitpicks)
    logger.debug("Extracted %d comment context(s) from %d review(s)", len(contexts), len(reviews))
    return contexts
