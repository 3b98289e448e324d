"""
savor — versioned writing-style skills that evolve from human edits.

A Skill is a style profile document with an append-only version chain.
Each cycle drafts an article from the current version, takes the human
edit, diffs it against the draft and asks an analysis model which rules
the edit implies. Accepted analyses become a new Skill version.
"""

__version__ = "0.3.0"
