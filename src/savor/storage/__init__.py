"""
Storage module - SQLite persistence through SQLAlchemy.

Exports the Database handle (engine, single-writer lock, transactions)
and the ORM rows.
"""

from .database import Database
from .models import ArticleRow, Base, DiffRecordRow, OriginalSampleRow, SkillRow, SkillVersionRow

__all__ = [
    "Database",
    "Base",
    "SkillRow",
    "SkillVersionRow",
    "ArticleRow",
    "DiffRecordRow",
    "OriginalSampleRow",
]
