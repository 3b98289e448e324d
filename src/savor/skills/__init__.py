"""
Skills module - Versioned style skills, their samples and exports.
"""

from .export import export_json, export_markdown
from .models import OriginalSample, Skill, SkillVersion
from .store import DEFAULT_CATEGORY, INITIAL_SUMMARY, SkillStore

__all__ = [
    "DEFAULT_CATEGORY",
    "INITIAL_SUMMARY",
    "OriginalSample",
    "Skill",
    "SkillStore",
    "SkillVersion",
    "export_json",
    "export_markdown",
]
