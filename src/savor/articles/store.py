"""
Artifact Store — Articles and the diff records attached to them.

Articles are plain CRUD rows listed newest-updated first. The AI draft
is written once at creation; saving only overwrites the human refinement.
Diff records belong to an article and cascade with it. A record's
``applied`` flag goes from false to true once, never back.
"""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..storage.database import Database
from ..storage.models import ArticleRow, DiffRecordRow, utcnow
from .models import Article, ArticleStatus, DiffRecord

logger = structlog.get_logger()

__all__ = ["ArticleStore"]


class ArticleStore:
    """Named operations over articles and diff records."""

    def __init__(self, database: Database):
        self.db = database
        self.log = logger.bind(component="article_store")

    # ── Articles ──────────────────────────────────────────────────────────

    def create_article(
        self,
        title: str,
        ai_generated_content: str = "",
        skill_id: int | None = None,
        skill_version_used: int | None = None,
        original_content: str = "",
        status: str = ArticleStatus.DRAFT.value,
    ) -> Article:
        try:
            with self.db.transaction() as session:
                article = self.insert_article(
                    session,
                    title=title,
                    ai_generated_content=ai_generated_content,
                    skill_id=skill_id,
                    skill_version_used=skill_version_used,
                    original_content=original_content,
                    status=status,
                )
        except IntegrityError as e:
            raise ValidationError(f"Article rejected by storage: {e.orig}") from e

        self.log.info("article.created", article_id=article.id, skill_id=skill_id)
        return article

    def insert_article(
        self,
        session: Session,
        title: str,
        ai_generated_content: str,
        skill_id: int | None,
        skill_version_used: int | None,
        original_content: str = "",
        status: str = ArticleStatus.DRAFT.value,
    ) -> Article:
        now = utcnow()
        row = ArticleRow(
            title=title,
            original_content=original_content,
            ai_generated_content=ai_generated_content,
            user_refined_content="",
            skill_id=skill_id,
            skill_version_used=skill_version_used,
            status=status,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        return Article.from_row(row)

    def get_article(self, article_id: int) -> Article:
        with self.db.read() as session:
            return Article.from_row(self._article_row(session, article_id))

    def article_in(self, session: Session, article_id: int) -> Article:
        return Article.from_row(self._article_row(session, article_id))

    def list_articles(self, skill_id: int | None = None) -> list[Article]:
        """Articles, most recently updated first, optionally for one skill."""
        stmt = select(ArticleRow).order_by(ArticleRow.updated_at.desc(), ArticleRow.id.desc())
        if skill_id is not None:
            stmt = stmt.where(ArticleRow.skill_id == skill_id)
        with self.db.read() as session:
            return [Article.from_row(r) for r in session.scalars(stmt).all()]

    def save_article(self, article_id: int, content: str) -> Article:
        """Store the human refinement verbatim and bump ``updated_at``.

        ``ai_generated_content`` is never touched.
        """
        with self.db.transaction() as session:
            row = self._article_row(session, article_id)
            row.user_refined_content = content
            row.updated_at = utcnow()
            session.flush()
            article = Article.from_row(row)

        self.log.info("article.saved", article_id=article_id, chars=len(content))
        return article

    def finalize_article(self, article_id: int) -> Article:
        with self.db.transaction() as session:
            row = self._article_row(session, article_id)
            row.status = ArticleStatus.FINALIZED.value
            row.updated_at = utcnow()
            session.flush()
            article = Article.from_row(row)

        self.log.info("article.finalized", article_id=article_id)
        return article

    def delete_article(self, article_id: int) -> bool:
        """Delete an article and, by cascade, its diff records."""
        with self.db.transaction() as session:
            result = session.execute(delete(ArticleRow).where(ArticleRow.id == article_id))
            deleted = result.rowcount > 0

        if deleted:
            self.log.info("article.deleted", article_id=article_id)
        return deleted

    # ── Diff records ──────────────────────────────────────────────────────

    def create_diff_record(
        self,
        article_id: int,
        diff_data: str,
        analysis_result: str,
        extracted_rules: str = "",
    ) -> DiffRecord:
        try:
            with self.db.transaction() as session:
                self._article_row(session, article_id)
                row = DiffRecordRow(
                    article_id=article_id,
                    diff_data=diff_data,
                    analysis_result=analysis_result,
                    extracted_rules=extracted_rules,
                    applied=False,
                    created_at=utcnow(),
                )
                session.add(row)
                session.flush()
                record = DiffRecord.from_row(row)
        except IntegrityError as e:
            raise ValidationError(f"Diff record rejected by storage: {e.orig}") from e

        self.log.info("diff_record.created", record_id=record.id, article_id=article_id)
        return record

    def get_diff_record(self, record_id: int) -> DiffRecord:
        with self.db.read() as session:
            return DiffRecord.from_row(self._record_row(session, record_id))

    def list_diff_records(self, article_id: int) -> list[DiffRecord]:
        """Records of one article, newest first."""
        with self.db.read() as session:
            rows = session.scalars(
                select(DiffRecordRow)
                .where(DiffRecordRow.article_id == article_id)
                .order_by(DiffRecordRow.id.desc())
            ).all()
            return [DiffRecord.from_row(r) for r in rows]

    def mark_applied(self, record_id: int) -> DiffRecord:
        with self.db.transaction() as session:
            return self.mark_applied_in(session, record_id)

    def mark_applied_in(self, session: Session, record_id: int) -> DiffRecord:
        """Flip ``applied`` to true in the caller's transaction.

        Raises:
            NotFoundError: If the record does not exist.
            ValidationError: If the record was already applied.
        """
        row = self._record_row(session, record_id)
        if row.applied:
            raise ValidationError(f"Diff record {record_id} was already applied")
        row.applied = True
        session.flush()
        return DiffRecord.from_row(row)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _article_row(self, session: Session, article_id: int) -> ArticleRow:
        row = session.get(ArticleRow, article_id)
        if row is None:
            raise NotFoundError("Article", article_id)
        return row

    def _record_row(self, session: Session, record_id: int) -> DiffRecordRow:
        row = session.get(DiffRecordRow, record_id)
        if row is None:
            raise NotFoundError("DiffRecord", record_id)
        return row
