"""Displayable diffs for planned edits."""

from __future__ import annotations

import difflib

__all__ = ["DEFAULT_CONTEXT_LINES", "generate_diff"]

DEFAULT_CONTEXT_LINES = 3


def generate_diff(
    old: str,
    new: str,
    *,
    path: str = "",
    context: int = DEFAULT_CONTEXT_LINES,
) -> str:
    """Unified diff of `old` -> `new`; empty string when they are equal."""
    if old == new:
        return ""
    lines = difflib.unified_diff(
        old.splitlines(),
        new.splitlines(),
        fromfile=f"a/{path}" if path else "a",
        tofile=f"b/{path}" if path else "b",
        n=max(0, context),
        lineterm="",
    )
    return "\n".join(lines)
