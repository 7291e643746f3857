"""Line-level diff used to detect and record conflicting overwrites.

``diff`` is pure and deterministic: it splits both texts on ``\\n`` and
tags every line ``same``, ``add`` or ``rem`` in an order from which the
new text can be rebuilt (``reconstruct``).  ``difflib.SequenceMatcher``
supplies the alignment; a replaced block lists its removed lines before
its added lines.
"""

from __future__ import annotations

import difflib
from enum import Enum


class DiffType(str, Enum):
    """Line tag in a recorded diff."""

    SAME = "same"
    ADD = "add"
    REM = "rem"


DiffChunks = list[tuple[DiffType, str]]


def split_lines(text: str) -> list[str]:
    """Split *text* on newlines.  The empty text has no lines."""
    if not text:
        return []
    return text.split("\n")


def diff(old_text: str, new_text: str) -> tuple[int, DiffChunks]:
    """Compute the line diff from *old_text* to *new_text*.

    Args:
        old_text: Text currently stored.
        new_text: Text about to replace it.

    Returns:
        A tuple ``(distance, chunks)``.  *distance* is the number of
        added plus removed lines (0 when the texts are equal); *chunks* is
        the ordered list of ``(diff_type, line)`` pairs.
    """
    old_lines = split_lines(old_text)
    new_lines = split_lines(new_text)

    matcher = difflib.SequenceMatcher(
        None, old_lines, new_lines, autojunk=False
    )
    chunks: DiffChunks = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            chunks.extend((DiffType.SAME, line) for line in old_lines[i1:i2])
            continue
        # delete, insert and replace
        chunks.extend((DiffType.REM, line) for line in old_lines[i1:i2])
        chunks.extend((DiffType.ADD, line) for line in new_lines[j1:j2])

    distance = sum(1 for kind, _ in chunks if kind is not DiffType.SAME)
    return distance, chunks


def has_removals(chunks: DiffChunks) -> bool:
    """Return ``True`` if any chunk removes a line."""
    return any(kind is DiffType.REM for kind, _ in chunks)


def reconstruct(chunks: DiffChunks) -> str:
    """Rebuild text from the ``same`` and ``add`` chunks, in order."""
    return "\n".join(
        line for kind, line in chunks if kind is not DiffType.REM
    )


_PREFIX = {DiffType.SAME: " ", DiffType.ADD: "+", DiffType.REM: "-"}


def format_chunks(chunks: DiffChunks) -> str:
    """Render chunks as unified-diff style lines for display."""
    return "\n".join(f"{_PREFIX[kind]}{line}" for kind, line in chunks)
