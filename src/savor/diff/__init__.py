"""
Diff module - Line-level alignment between a draft and its human edit.
"""

from .engine import (
    ChangeTag,
    DiffChunk,
    DiffStats,
    compute_diff,
    diff_stats,
    has_changes,
    split_lines,
    summarize_diff,
)

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
