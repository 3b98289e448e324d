"""
Diff Engine — Line-level alignment of two texts.

Splits both texts into lines (terminators kept, a trailing unterminated
fragment counts as a line) and aligns them with difflib's SequenceMatcher.
Each line becomes one chunk tagged equal, delete or insert. Within a
replaced run, deleted lines come before inserted lines.

Reconstruction holds for every output:
    "".join(c.value for c in chunks if c.tag != INSERT) == original
    "".join(c.value for c in chunks if c.tag != DELETE) == modified

The functions here are pure and keep no module state, so they can be called
from any number of worker threads at once.
"""

import difflib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

__all__ = [
    "ChangeTag",
    "DiffChunk",
    "DiffStats",
    "compute_diff",
    "diff_stats",
    "has_changes",
    "split_lines",
    "summarize_diff",
]


class ChangeTag(Enum):
    """Tag of a diff chunk."""

    EQUAL = "equal"    # Present in both texts
    DELETE = "delete"  # Only in the original
    INSERT = "insert"  # Only in the modified text


_SIGNS = {
    ChangeTag.EQUAL: " ",
    ChangeTag.DELETE: "-",
    ChangeTag.INSERT: "+",
}


@dataclass(frozen=True)
class DiffChunk:
    """One aligned line."""

    tag: ChangeTag
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"tag": self.tag.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiffChunk":
        return cls(tag=ChangeTag(data["tag"]), value=data["value"])


@dataclass(frozen=True)
class DiffStats:
    """Line counts per tag."""

    equal: int = 0
    inserted: int = 0
    deleted: int = 0

    @property
    def changed(self) -> int:
        return self.inserted + self.deleted


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping terminators.

    Only ``\\n`` ends a line, so ``\\r\\n`` stays attached to its line and
    a lone ``\\r`` is content. An empty string has no lines.
    """
    if not text:
        return []
    lines = text.split("\n")
    result = [line + "\n" for line in lines[:-1]]
    if lines[-1]:
        result.append(lines[-1])
    return result


def compute_diff(original: str, modified: str) -> list[DiffChunk]:
    """Align two texts line by line.

    Args:
        original: Text before the edit (e.g. the AI draft).
        modified: Text after the edit (e.g. the human refinement).

    Returns:
        Ordered list of one-line chunks. Empty when both texts are empty.
    """
    old_lines = split_lines(original)
    new_lines = split_lines(modified)

    # autojunk would treat frequent lines (blank lines in prose) as junk
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    chunks: list[DiffChunk] = []
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            chunks.extend(DiffChunk(ChangeTag.EQUAL, line) for line in old_lines[i1:i2])
            continue
        if op in ("delete", "replace"):
            chunks.extend(DiffChunk(ChangeTag.DELETE, line) for line in old_lines[i1:i2])
        if op in ("insert", "replace"):
            chunks.extend(DiffChunk(ChangeTag.INSERT, line) for line in new_lines[j1:j2])
    return chunks


def summarize_diff(chunks: Iterable[DiffChunk]) -> str:
    """Render chunks as a sign-prefixed summary.

    Each chunk becomes ``"<sign> <line>"`` with sign ``-``, ``+`` or a space.
    A line without terminator gets one so the summary stays line-oriented.
    This is the format stored in ``DiffRecord.diff_data`` and sent to the
    analysis model.
    """
    parts: list[str] = []
    for chunk in chunks:
        value = chunk.value if chunk.value.endswith("\n") else chunk.value + "\n"
        parts.append(f"{_SIGNS[chunk.tag]} {value}")
    return "".join(parts)


def diff_stats(chunks: Iterable[DiffChunk]) -> DiffStats:
    """Count chunks per tag."""
    equal = inserted = deleted = 0
    for chunk in chunks:
        if chunk.tag is ChangeTag.EQUAL:
            equal += 1
        elif chunk.tag is ChangeTag.INSERT:
            inserted += 1
        else:
            deleted += 1
    return DiffStats(equal=equal, inserted=inserted, deleted=deleted)


def has_changes(chunks: Iterable[DiffChunk]) -> bool:
    """True if any chunk is an insert or a delete."""
    return any(chunk.tag is not ChangeTag.EQUAL for chunk in chunks)
