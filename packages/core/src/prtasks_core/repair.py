"""Best-effort repair of oracle output that fails to parse as JSON.

Strategies run in a fixed order and parseability is re-tested after each
one; the first text that parses is returned. Each strategy leaves valid
JSON untouched, so repairing twice gives the same result as repairing once.
"""

from __future__ import annotations

import json
import logging
import re

from prtasks_core.errors import RepairError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)

_CONTROL_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}

_CLOSERS = {"[": "]", "{": "}"}
# Earlier object boundaries tried before giving up on a cut-off response.
MAX_WALKBACK = 8


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False
    return True


def strip_code_fence(text: str) -> str:
    """Remove one enclosing ```lang ... ``` wrapper, if present."""
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def escape_control_chars(text: str) -> str:
    """Escape raw control characters that appear inside string literals."""
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
            elif ch == "\\":
                escaped = True
                out.append(ch)
            elif ch == '"':
                in_string = False
                out.append(ch)
            elif ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
            elif ord(ch) < 0x20:
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
        else:
            if ch == '"':
                in_string = True
            out.append(ch)
    return "".join(out)


def unclosed_structure(text: str) -> tuple[list[str], bool]:
    """Return the stack of unclosed openers and whether a string is left open."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("]", "}") and stack and _CLOSERS[stack[-1]] == ch:
            stack.pop()
    return stack, in_string


def _close(text: str) -> str:
    stack, in_string = unclosed_structure(text)
    if in_string:
        text += '"'
    text = text.rstrip()
    if text.endswith(","):
        text = text[:-1]
    return text + "".join(_CLOSERS[opener] for opener in reversed(stack))


def balance_brackets(text: str) -> str:
    """Append the closers missing from a response cut off mid-structure.

    When closing at the cut point does not parse (e.g. the cut fell inside a
    key), retry from up to MAX_WALKBACK earlier object boundaries, dropping
    the partial trailing element.
    """
    if _parses(text):
        return text
    closed = _close(text)
    if _parses(closed):
        return closed

    cut = len(text)
    for _ in range(MAX_WALKBACK):
        cut = text.rfind("}", 0, cut)
        if cut <= 0:
            break
        candidate = _close(text[: cut + 1])
        if _parses(candidate):
            return candidate
    return closed


STRATEGIES = (
    ("strip_code_fence", strip_code_fence),
    ("escape_control_chars", escape_control_chars),
    ("balance_brackets", balance_brackets),
)


def repair_json(text: str) -> str:
    """Return ``text`` transformed into parseable JSON, or raise RepairError."""
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError as e:
        original = e

    attempted: list[str] = []
    current = text
    for name, strategy in STRATEGIES:
        attempted.append(name)
        current = strategy(current)
        if _parses(current):
            logger.debug("JSON repaired by %s", name)
            return current

    raise RepairError(original, attempted)
