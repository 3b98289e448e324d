"""
SQLAlchemy ORM rows.

Tables:
- skill: one evolving style profile, with its current version pointer
- skill_version: append-only snapshots, unique on (skill_id, version_number)
- original_sample: writing samples a skill was bootstrapped from
- article: one generation cycle (draft + human refinement)
- diff_record: analysis of one human edit

Deletes are issued as SQL statements so SQLite enforces the foreign key
actions: versions and samples cascade with their skill, diff records
cascade with their article, and article.skill_id is set to NULL when the
skill goes away. article.skill_version_used has no foreign key; it is a
provenance marker only.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SkillRow(Base):
    __tablename__ = "skill"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(128), nullable=False, default="General")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<SkillRow(id={self.id}, name={self.name!r}, v{self.current_version})>"


class SkillVersionRow(Base):
    __tablename__ = "skill_version"
    __table_args__ = (UniqueConstraint("skill_id", "version_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    skill_id: Mapped[int] = mapped_column(
        ForeignKey("skill.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content_markdown: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    change_summary: Mapped[str] = mapped_column(Text, nullable=False, default="Initial version")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class OriginalSampleRow(Base):
    __tablename__ = "original_sample"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="Untitled sample")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    skill_id: Mapped[int] = mapped_column(
        ForeignKey("skill.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class ArticleRow(Base):
    __tablename__ = "article"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="Untitled")
    original_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ai_generated_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_refined_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    skill_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("skill.id", ondelete="SET NULL"), nullable=True, index=True
    )
    skill_version_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class DiffRecordRow(Base):
    __tablename__ = "diff_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(
        ForeignKey("article.id", ondelete="CASCADE"), nullable=False, index=True
    )
    diff_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
    analysis_result: Mapped[str] = mapped_column(Text, nullable=False, default="")
    extracted_rules: Mapped[str] = mapped_column(Text, nullable=False, default="")
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
