"""Request builders for the oracle.

Every per-comment request is a fixed instruction header, then a
``Comment Details:`` line, then the comment data. Retry shrinking keeps
everything above that line verbatim.
"""

from __future__ import annotations

import json

from prtasks_core.models import CommentContext
from prtasks_core.retry import SHRINK_MARKER

_PRIORITY_GUIDE = """Priority guide:
- critical: security vulnerability, data loss, crash, broken build
- high: logic bug, missing error handling, incorrect behaviour
- medium: maintainability, missing tests, unclear naming
- low: style, formatting, optional suggestions"""

_OUTPUT_FORMAT = """Return ONLY a JSON array, no markdown and no prose:
[
  {"description": "<one actionable task>", "priority": "critical|high|medium|low", "initial_status": "todo|pending"}
]
Return [] if the comment needs no action."""


def _language_line(config: dict) -> str:
    language = config.get("user_language")
    return f"Write every task description in {language}.\n" if language else ""


def _nitpick_line(config: dict) -> str:
    if config.get("process_nitpick_comments", True):
        return (
            "Nitpick and style suggestions are in scope: create tasks for them "
            f"with priority \"{config.get('nitpick_priority', 'low')}\".\n"
        )
    return "Ignore nitpick and purely stylistic suggestions.\n"


def _comment_details(context: CommentContext) -> str:
    comment = context.comment
    location = f"{comment.file}:{comment.line}" if comment.file else "(review summary)"
    lines = [
        SHRINK_MARKER,
        f"- Comment ID: {comment.id}",
        f"- Author: {comment.author}",
        f"- Location: {location}",
        "- Comment Text:",
        comment.body,
    ]
    if comment.replies:
        lines.append("")
        lines.append("Reply chain (for context):")
        lines.extend(f"  - {r.author}: {r.body}" for r in comment.replies)
    return "\n".join(lines)


def build_comment_prompt(context: CommentContext, config: dict) -> str:
    review = context.review
    return f"""You turn one GitHub pull request review comment into actionable tasks for the PR author.
{_language_line(config)}{_nitpick_line(config)}
{_PRIORITY_GUIDE}

{_OUTPUT_FORMAT}

Rules:
- Create one task per distinct action; do not merge unrelated items.
- Each description must be self-contained and start with a verb.
- If the reply chain shows the comment was already addressed, return [].
- Use "pending" as initial_status only for optional suggestions.

Review Context:
- Review ID: {review.id}
- Reviewer: {review.author}
- Review State: {review.state}

{_comment_details(context)}
"""


def build_fast_prompt(context: CommentContext, config: dict) -> str:
    """Abbreviated request: the comment only, no review context or rules."""
    return f"""Extract actionable tasks from this code review comment.
{_language_line(config)}Output JSON array only: [{{"description": "...", "priority": "critical|high|medium|low"}}]. Empty: []

{_comment_details(context)}
"""


def build_dedup_prompt(summaries: list[dict]) -> str:
    """Request for the semantic dedup tier; only compact task summaries are sent."""
    return f"""These tasks were generated from pull request review comments. Some may describe the same work.
Group semantic duplicates. Tasks from different comments can be duplicates; tasks with different intent are not.

Tasks:
{json.dumps(summaries, indent=2, ensure_ascii=False)}

Return ONLY this JSON object:
{{
  "unique_task_ids": ["<id of every task to keep>"],
  "duplicate_groups": [
    {{"primary_task_id": "<kept id>", "duplicate_task_ids": ["<removed id>"], "reason": "<short reason>"}}
  ],
  "reasoning": "<one sentence>"
}}
"""
