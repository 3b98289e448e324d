"""
Article and DiffRecord records returned by the Artifact Store.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..storage.models import ArticleRow, DiffRecordRow


class ArticleStatus(str, Enum):
    """Lifecycle of an article."""

    DRAFT = "draft"          # Created without a generation cycle
    EDITING = "editing"      # Draft generated, human edit in progress
    FINALIZED = "finalized"  # Writer marked the article done


@dataclass(frozen=True)
class Article:
    """One generation cycle's output.

    ``skill_version_used`` is provenance fixed at draft time. It survives
    the deletion of the skill it names; ``skill_id`` does not.
    """

    id: int
    title: str
    original_content: str
    ai_generated_content: str
    user_refined_content: str
    skill_id: int | None
    skill_version_used: int | None
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: ArticleRow) -> "Article":
        return cls(
            id=row.id,
            title=row.title,
            original_content=row.original_content,
            ai_generated_content=row.ai_generated_content,
            user_refined_content=row.user_refined_content,
            skill_id=row.skill_id,
            skill_version_used=row.skill_version_used,
            status=row.status,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def is_edited(self) -> bool:
        """True once a human refinement has been saved."""
        return bool(self.user_refined_content)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass(frozen=True)
class DiffRecord:
    """Evidence chain from a human edit to a proposed rule change."""

    id: int
    article_id: int
    diff_data: str
    analysis_result: str
    extracted_rules: str
    applied: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: DiffRecordRow) -> "DiffRecord":
        return cls(
            id=row.id,
            article_id=row.article_id,
            diff_data=row.diff_data,
            analysis_result=row.analysis_result,
            extracted_rules=row.extracted_rules,
            applied=row.applied,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data
