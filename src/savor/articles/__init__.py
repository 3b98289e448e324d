"""
Articles module - Generated drafts, human refinements and diff records.
"""

from .models import Article, ArticleStatus, DiffRecord
from .store import ArticleStore

__all__ = [
    "Article",
    "ArticleStatus",
    "ArticleStore",
    "DiffRecord",
]
