"""
Version Store — Skills and their append-only version chains.

A Skill is created together with its version 1. Evolving a skill appends
version ``current + 1`` and moves the ``current_version`` pointer in the
same transaction, so the pointer can never name a row that does not
exist. Existing versions are never updated; they go away only when their
skill is deleted.

All operations run under the Database lock. Two concurrent ``evolve``
calls on one skill are serialized: the second sees the first's version.
"""

from collections.abc import Iterable

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StorageConsistencyError, ValidationError
from ..storage.database import Database
from ..storage.models import OriginalSampleRow, SkillRow, SkillVersionRow, utcnow
from .models import OriginalSample, Skill, SkillVersion

logger = structlog.get_logger()

__all__ = [
    "DEFAULT_CATEGORY",
    "INITIAL_SUMMARY",
    "SkillStore",
]

DEFAULT_CATEGORY = "General"
INITIAL_SUMMARY = "Initial version"


class SkillStore:
    """Named operations over skills, versions and samples.

    Methods that take a ``session`` run inside a transaction the caller
    already opened with ``Database.transaction()``; the pipeline uses them
    to combine a version append with other writes. Everything else opens
    its own transaction.
    """

    def __init__(self, database: Database):
        self.db = database
        self.log = logger.bind(component="skill_store")

    # ── Skills ────────────────────────────────────────────────────────────

    def create_skill(
        self,
        name: str,
        category: str | None = None,
        description: str | None = None,
        content_markdown: str = "",
        content_json: str = "{}",
        change_summary: str = INITIAL_SUMMARY,
    ) -> Skill:
        """Create a skill and its version 1 atomically.

        Raises:
            ValidationError: If the storage rejects the write. Nothing is kept.
        """
        try:
            with self.db.transaction() as session:
                row = self.insert_skill(
                    session,
                    name=name,
                    category=category,
                    description=description,
                    content_markdown=content_markdown,
                    content_json=content_json,
                    change_summary=change_summary,
                )
                skill = Skill.from_row(row)
        except IntegrityError as e:
            raise ValidationError(f"Skill rejected by storage: {e.orig}") from e

        self.log.info("skill.created", skill_id=skill.id, name=skill.name)
        return skill

    def insert_skill(
        self,
        session: Session,
        name: str,
        category: str | None = None,
        description: str | None = None,
        content_markdown: str = "",
        content_json: str = "{}",
        change_summary: str = INITIAL_SUMMARY,
    ) -> SkillRow:
        """Insert a skill row and its version 1 in the caller's transaction."""
        now = utcnow()
        row = SkillRow(
            name=name,
            category=category if category is not None else DEFAULT_CATEGORY,
            description=description if description is not None else "",
            current_version=1,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()

        session.add(
            SkillVersionRow(
                skill_id=row.id,
                version_number=1,
                content_markdown=content_markdown,
                content_json=content_json,
                change_summary=change_summary,
                created_at=now,
            )
        )
        session.flush()
        return row

    def get_skill(self, skill_id: int) -> Skill:
        with self.db.read() as session:
            return Skill.from_row(self._skill_row(session, skill_id))

    def list_skills(self) -> list[Skill]:
        """All skills, most recently updated first."""
        with self.db.read() as session:
            rows = session.scalars(
                select(SkillRow).order_by(SkillRow.updated_at.desc(), SkillRow.id.desc())
            ).all()
            return [Skill.from_row(r) for r in rows]

    def update_skill(
        self,
        skill_id: int,
        name: str | None = None,
        category: str | None = None,
        description: str | None = None,
    ) -> Skill:
        """Update skill metadata in place. Omitted fields keep their value."""
        with self.db.transaction() as session:
            row = self._skill_row(session, skill_id)
            if name is not None:
                row.name = name
            if category is not None:
                row.category = category
            if description is not None:
                row.description = description
            row.updated_at = utcnow()
            session.flush()
            skill = Skill.from_row(row)

        self.log.info("skill.updated", skill_id=skill_id)
        return skill

    def delete_skill(self, skill_id: int) -> bool:
        """Delete a skill.

        Versions and samples cascade. Articles keep their row: their
        ``skill_id`` becomes NULL and ``skill_version_used`` is untouched.

        Returns:
            True if a skill was deleted, False if it did not exist.
        """
        with self.db.transaction() as session:
            result = session.execute(delete(SkillRow).where(SkillRow.id == skill_id))
            deleted = result.rowcount > 0

        if deleted:
            self.log.info("skill.deleted", skill_id=skill_id)
        return deleted

    # ── Versions ──────────────────────────────────────────────────────────

    def evolve(
        self,
        skill_id: int,
        new_content: str,
        change_summary: str,
        content_json: str | None = None,
    ) -> SkillVersion:
        """Append a new version and move the current pointer to it.

        Args:
            skill_id: Skill to evolve.
            new_content: Markdown of the new version.
            change_summary: Human-readable rationale.
            content_json: Structured content. None keeps the current version's.

        Raises:
            NotFoundError: If the skill does not exist. Nothing is written.
        """
        try:
            with self.db.transaction() as session:
                version = self.append_version(
                    session, skill_id, new_content, change_summary, content_json
                )
        except IntegrityError as e:
            raise ValidationError(f"Version rejected by storage: {e.orig}") from e

        self.log.info(
            "skill.evolved",
            skill_id=skill_id,
            version=version.version_number,
            summary=change_summary[:80],
        )
        return version

    def append_version(
        self,
        session: Session,
        skill_id: int,
        new_content: str,
        change_summary: str,
        content_json: str | None = None,
    ) -> SkillVersion:
        """Append ``current + 1`` and update the pointer in the caller's transaction."""
        skill = self._skill_row(session, skill_id)
        next_number = skill.current_version + 1

        if content_json is None:
            current = self._version_row(session, skill_id, skill.current_version)
            content_json = current.content_json

        now = utcnow()
        row = SkillVersionRow(
            skill_id=skill_id,
            version_number=next_number,
            content_markdown=new_content,
            content_json=content_json,
            change_summary=change_summary,
            created_at=now,
        )
        session.add(row)
        skill.current_version = next_number
        skill.updated_at = now
        session.flush()
        return SkillVersion.from_row(row)

    def get_version(self, skill_id: int, version_number: int) -> SkillVersion:
        with self.db.read() as session:
            return SkillVersion.from_row(self._version_row(session, skill_id, version_number))

    def get_current_version(self, skill_id: int) -> SkillVersion:
        """The version the skill's pointer names."""
        with self.db.read() as session:
            return self.current_version_in(session, skill_id)

    def skill_in(self, session: Session, skill_id: int) -> Skill:
        return Skill.from_row(self._skill_row(session, skill_id))

    def current_version_in(self, session: Session, skill_id: int) -> SkillVersion:
        skill = self._skill_row(session, skill_id)
        return SkillVersion.from_row(self._version_row(session, skill_id, skill.current_version))

    def list_versions(self, skill_id: int) -> list[SkillVersion]:
        """All versions of a skill, newest first. Empty for an unknown skill."""
        with self.db.read() as session:
            rows = session.scalars(
                select(SkillVersionRow)
                .where(SkillVersionRow.skill_id == skill_id)
                .order_by(SkillVersionRow.version_number.desc())
            ).all()
            return [SkillVersion.from_row(r) for r in rows]

    def count_versions(self, skill_id: int) -> int:
        with self.db.read() as session:
            return session.scalar(
                select(func.count(SkillVersionRow.id)).where(SkillVersionRow.skill_id == skill_id)
            ) or 0

    # ── Samples ───────────────────────────────────────────────────────────

    def add_samples(self, skill_id: int, samples: Iterable[str]) -> list[OriginalSample]:
        with self.db.transaction() as session:
            self._skill_row(session, skill_id)
            return self.insert_samples(session, skill_id, samples)

    def insert_samples(
        self, session: Session, skill_id: int, samples: Iterable[str]
    ) -> list[OriginalSample]:
        rows = [
            OriginalSampleRow(skill_id=skill_id, title=_sample_title(text), content=text)
            for text in samples
        ]
        session.add_all(rows)
        session.flush()
        return [OriginalSample.from_row(r) for r in rows]

    def list_samples(self, skill_id: int) -> list[OriginalSample]:
        with self.db.read() as session:
            rows = session.scalars(
                select(OriginalSampleRow)
                .where(OriginalSampleRow.skill_id == skill_id)
                .order_by(OriginalSampleRow.id)
            ).all()
            return [OriginalSample.from_row(r) for r in rows]

    # ── Lineage check ─────────────────────────────────────────────────────

    def reconcile(self) -> int:
        """Re-derive every pointer from ``max(version_number)``.

        Evolve is transactional, so a mismatch can only come from a
        database written outside this store. Mismatches are repaired and
        logged.

        Returns:
            Number of skills whose pointer was repaired.

        Raises:
            StorageConsistencyError: If a skill has no versions at all.
        """
        repaired = 0
        with self.db.transaction() as session:
            rows = session.execute(
                select(SkillRow, func.max(SkillVersionRow.version_number))
                .outerjoin(SkillVersionRow, SkillVersionRow.skill_id == SkillRow.id)
                .group_by(SkillRow.id)
            ).all()
            for skill, max_version in rows:
                if max_version is None:
                    raise StorageConsistencyError(f"Skill {skill.id} has no versions")
                if skill.current_version != max_version:
                    self.log.warning(
                        "skill.pointer_repaired",
                        skill_id=skill.id,
                        stored=skill.current_version,
                        derived=max_version,
                    )
                    skill.current_version = max_version
                    repaired += 1
        return repaired

    # ── Helpers ───────────────────────────────────────────────────────────

    def _skill_row(self, session: Session, skill_id: int) -> SkillRow:
        row = session.get(SkillRow, skill_id)
        if row is None:
            raise NotFoundError("Skill", skill_id)
        return row

    def _version_row(self, session: Session, skill_id: int, version_number: int) -> SkillVersionRow:
        row = session.scalar(
            select(SkillVersionRow).where(
                SkillVersionRow.skill_id == skill_id,
                SkillVersionRow.version_number == version_number,
            )
        )
        if row is None:
            raise NotFoundError("SkillVersion", f"{skill_id}/v{version_number}")
        return row


def _sample_title(text: str) -> str:
    """First non-empty line of a sample, capped, as its title."""
    for line in text.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return line[:80]
    return "Untitled sample"
