"""
Skill records returned by the Version Store.

Plain frozen dataclasses: callers never hold ORM rows, so nothing they
do can reach the database outside a store operation.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from ..storage.models import OriginalSampleRow, SkillRow, SkillVersionRow


def _iso(value: datetime) -> str:
    return value.isoformat()


@dataclass(frozen=True)
class Skill:
    """Identity of one evolving style profile."""

    id: int
    name: str
    category: str
    description: str
    current_version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: SkillRow) -> "Skill":
        return cls(
            id=row.id,
            name=row.name,
            category=row.category,
            description=row.description,
            current_version=row.current_version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data


@dataclass(frozen=True)
class SkillVersion:
    """One immutable snapshot in a skill's lineage."""

    id: int
    skill_id: int
    version_number: int
    content_markdown: str
    content_json: str
    change_summary: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: SkillVersionRow) -> "SkillVersion":
        return cls(
            id=row.id,
            skill_id=row.skill_id,
            version_number=row.version_number,
            content_markdown=row.content_markdown,
            content_json=row.content_json,
            change_summary=row.change_summary,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass(frozen=True)
class OriginalSample:
    """A writing sample a skill was bootstrapped from."""

    id: int
    skill_id: int
    title: str
    content: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: OriginalSampleRow) -> "OriginalSample":
        return cls(
            id=row.id,
            skill_id=row.skill_id,
            title=row.title,
            content=row.content,
            created_at=row.created_at,
        )
