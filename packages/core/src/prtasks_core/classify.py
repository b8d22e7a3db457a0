"""Pattern-based text classifiers for review comments.

The patterns are data: each table below is the complete list of what a
classifier matches, so adding a bot format or marker means adding a row.
"""

from __future__ import annotations

import re
from typing import Iterable

# Phrases a bot or author leaves when a thread has been dealt with. Matched
# case-insensitively anywhere in the comment or one of its replies.
RESOLUTION_MARKERS: tuple[str, ...] = (
    "addressed in commit",
    "fixed in commit",
    "resolved in commit",
)

# Collapsed low-priority sections, e.g. CodeRabbit's
# <details><summary>🧹 Nitpick comments (3)</summary> ... </details>
NITPICK_BLOCK_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"<details>\s*<summary>[^<]*(?:🧹|nitpick)[^<]*</summary>", re.IGNORECASE),
    re.compile(r"^\s*(?:🧹\s*)?nitpick comments?\s*\(\d+\)", re.IGNORECASE | re.MULTILINE),
)

# Header that says the block above carries no actionable item.
ZERO_ACTIONABLE_PATTERN = re.compile(r"\**actionable comments posted:\s*0\**", re.IGNORECASE)

_DETAILS_BLOCK = re.compile(r"<details>.*?</details>", re.IGNORECASE | re.DOTALL)


def _prefix_regex(prefixes: Iterable[str]) -> re.Pattern | None:
    alternatives = [re.escape(p.strip()) for p in prefixes if p and p.strip()]
    if not alternatives:
        return None
    # Anchored at start of text or start of a line; optional markdown emphasis
    # or list bullet in front ("**nit:**", "- nit:") still counts.
    return re.compile(r"^[ \t>*_\-]*(?:" + "|".join(alternatives) + r")", re.IGNORECASE | re.MULTILINE)


def has_resolution_marker(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in RESOLUTION_MARKERS)


def is_resolved(resolved_flag: bool, body: str, replies: Iterable[str] = ()) -> bool:
    """True if the source system says the thread is resolved, else if any text carries a marker."""
    if resolved_flag:
        return True
    if has_resolution_marker(body):
        return True
    return any(has_resolution_marker(reply) for reply in replies)


def is_low_priority(text: str, prefixes: Iterable[str]) -> bool:
    """True if a line of ``text`` starts with one of the low-priority prefixes.

    ``"nit: rename this"`` and ``"Looks fine.\\nnit: rename"`` match;
    ``"this is not a nit: really"`` does not.
    """
    regex = _prefix_regex(prefixes)
    return bool(regex and regex.search(text or ""))


def has_nitpick_block(text: str) -> bool:
    return any(p.search(text or "") for p in NITPICK_BLOCK_PATTERNS)


def is_nitpick_only(text: str, prefixes: Iterable[str]) -> bool:
    """Classify a comment or review body as containing nothing but nitpicks.

    Structured form: a collapsed nitpick block, with no actionable content
    outside collapsed blocks (a zero-actionable header does not count as
    content). Plain-text form: the text is led by a low-priority prefix.
    """
    text = text or ""
    if has_nitpick_block(text):
        outside = _DETAILS_BLOCK.sub("", text)
        outside = ZERO_ACTIONABLE_PATTERN.sub("", outside)
        if not NITPICK_BLOCK_PATTERNS[0].search(text):
            # Plain "Nitpick comments (N)" heading without a details block:
            # everything after the heading belongs to the nitpick section.
            match = NITPICK_BLOCK_PATTERNS[1].search(text)
            outside = text[: match.start()] if match else outside
            outside = ZERO_ACTIONABLE_PATTERN.sub("", outside)
        return not outside.strip()
    return is_low_priority(text, prefixes)
