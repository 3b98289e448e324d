"""
Evolution Pipeline - Draft, edit, diff, analyze and commit a Skill.

Each capability step follows the same shape:

    1. Read what the prompt needs under the store lock, then release it.
    2. Call the capability with no lock held (it may block for a long time).
    3. If the caller cancelled meanwhile, discard the result and stop.
    4. Otherwise write the result in one short transaction.

A failed capability call moves the cycle to FAILED and writes nothing;
everything persisted by earlier steps stays, so only the failed step has
to be retried. The pipeline itself never retries and never applies an
analysis on its own: committing is the caller's decision.
"""

import json
import threading

import structlog
from sqlalchemy.exc import IntegrityError

from ..articles.models import Article, ArticleStatus, DiffRecord
from ..articles.store import ArticleStore
from ..config.schema import AppConfig
from ..diff import DiffChunk, compute_diff, diff_stats, has_changes, summarize_diff
from ..errors import CapabilityError, NotFoundError, ValidationError
from ..llm.capability import ChatCapability, Message
from ..logging import HumanLog
from ..prompts import (
    build_analyze_style_prompt,
    build_diff_analyze_prompt,
    build_generate_prompt,
    style_json_to_markdown,
)
from ..skills.models import Skill, SkillVersion
from ..skills.store import SkillStore
from ..storage.database import Database
from .rules import extract_new_rules, merge_rules, parse_analysis
from .state import CycleCancelledError, CycleState, EvolutionCycle, InvalidTransitionError

logger = structlog.get_logger()

__all__ = ["BOOTSTRAP_SUMMARY", "EvolutionPipeline"]

BOOTSTRAP_SUMMARY = "Initial style extracted from original samples"


class EvolutionPipeline:
    """Orchestrates evolution cycles over the stores and a chat capability.

    The pipeline holds no state of its own between calls; every step
    receives the ``EvolutionCycle`` it advances. One pipeline can serve
    many cycles from many threads.
    """

    def __init__(
        self,
        database: Database,
        capability: ChatCapability,
        config: AppConfig | None = None,
    ):
        self.db = database
        self.capability = capability
        self.config = config or AppConfig()
        self.skills = SkillStore(database)
        self.articles = ArticleStore(database)
        self.log = logger.bind(component="pipeline")
        self.hlog = HumanLog(self.log)

    # ── Step 1-2: draft ───────────────────────────────────────────────────

    def request_draft(
        self,
        cycle: EvolutionCycle | None,
        skill_id: int,
        topic: str,
        cancel: threading.Event | None = None,
    ) -> EvolutionCycle:
        """Generate a draft under the Skill's current version and persist it.

        The version is read before the call and recorded on the Article
        even if the Skill evolves while the call is in flight.

        Raises:
            ValidationError: Empty topic, or the cycle cannot start a draft.
            NotFoundError: Unknown skill. The cycle is untouched.
            CapabilityError: The call failed. The cycle is FAILED, no Article.
            CycleCancelledError: ``cancel`` was set. Nothing is written.
        """
        if not topic.strip():
            raise ValidationError("Topic must not be empty")

        cycle = cycle or EvolutionCycle(skill_id=skill_id)
        _require(cycle, CycleState.DRAFT_REQUESTED)

        version = self.skills.get_current_version(skill_id)

        snapshot = cycle.snapshot()
        cycle.advance(CycleState.DRAFT_REQUESTED)
        cycle.skill_id = skill_id
        self.hlog.draft_requested(skill_id, version.version_number, topic)
        self.log.debug("pipeline.draft.start", skill_id=skill_id, version=version.version_number)

        messages: list[Message] = [
            {"role": "user", "content": build_generate_prompt(version.content_markdown, topic)},
        ]
        text = self._call(
            cycle, snapshot, "draft", messages,
            self.config.llm.generation_temperature, cancel,
        )

        article = self.articles.create_article(
            title=topic.strip(),
            ai_generated_content=text,
            skill_id=skill_id,
            skill_version_used=version.version_number,
            status=ArticleStatus.EDITING.value,
        )
        cycle.article_id = article.id
        cycle.version_used = version.version_number
        cycle.chunks = []
        cycle.diff_record_id = None
        cycle.advance(CycleState.DRAFT_READY)
        self.hlog.draft_ready(article.id, len(text))
        return cycle

    # ── Step 3-4: edit and diff ───────────────────────────────────────────

    def submit_edit(self, cycle: EvolutionCycle, content: str) -> Article:
        """Persist the human refinement verbatim."""
        _require(cycle, CycleState.AWAITING_EDIT)

        article = self.articles.save_article(self._article_id(cycle), content)
        cycle.advance(CycleState.AWAITING_EDIT)
        cycle.chunks = []
        self.hlog.edit_saved(article.id)
        return article

    def compute_diff(self, cycle: EvolutionCycle) -> list[DiffChunk]:
        """Diff the persisted draft against the persisted edit."""
        _require(cycle, CycleState.DIFFING)

        article = self.articles.get_article(self._article_id(cycle))
        chunks = compute_diff(article.ai_generated_content, article.user_refined_content)
        cycle.advance(CycleState.DIFFING)
        cycle.chunks = chunks

        stats = diff_stats(chunks)
        self.hlog.diff_computed(stats.equal, stats.inserted, stats.deleted)
        return chunks

    # ── Step 5-6: analysis ────────────────────────────────────────────────

    def request_analysis(
        self,
        cycle: EvolutionCycle,
        cancel: threading.Event | None = None,
    ) -> DiffRecord:
        """Ask the capability what the edit says about the style.

        The Skill's content is read at analysis time, not draft time, so
        the analysis sees rules committed since the draft was generated.
        A cycle in FAILED after an analysis failure retries from here with
        the same inputs.

        Raises:
            ValidationError: No edit saved yet, or it is identical to the draft.
            CapabilityError: The call failed. Edit and diff are kept.
            CycleCancelledError: ``cancel`` was set. Nothing is written.
        """
        _require(cycle, CycleState.ANALYSIS_REQUESTED)

        article_id = self._article_id(cycle)
        with self.db.read() as session:
            article = self.articles.article_in(session, article_id)
            current_skill = ""
            current_number = None
            if article.skill_id is not None:
                current = self.skills.current_version_in(session, article.skill_id)
                current_skill = current.content_markdown
                current_number = current.version_number

        if not article.is_edited:
            raise ValidationError(f"Article {article_id} has no edit to analyze yet")
        chunks = compute_diff(article.ai_generated_content, article.user_refined_content)
        if not has_changes(chunks):
            raise ValidationError("No changes to analyze")
        diff_summary = summarize_diff(chunks)

        snapshot = cycle.snapshot()
        cycle.advance(CycleState.ANALYSIS_REQUESTED)
        cycle.chunks = chunks
        self.hlog.analysis_requested(article_id, current_number)

        prompt = build_diff_analyze_prompt(
            article.ai_generated_content,
            article.user_refined_content,
            diff_summary,
            current_skill,
        )
        text = self._call(
            cycle, snapshot, "analysis", [{"role": "user", "content": prompt}],
            self.config.llm.analysis_temperature, cancel,
        )

        parsed = parse_analysis(text)
        extracted = (
            json.dumps(extract_new_rules(parsed), ensure_ascii=False)
            if parsed is not None else text
        )
        record = self.articles.create_diff_record(
            article_id=article_id,
            diff_data=diff_summary,
            analysis_result=text,
            extracted_rules=extracted,
        )
        cycle.diff_record_id = record.id
        cycle.advance(CycleState.ANALYSIS_READY)
        self.hlog.analysis_ready(record.id)
        return record

    # ── Step 7: commit ────────────────────────────────────────────────────

    def commit(
        self,
        cycle: EvolutionCycle,
        new_content: str,
        change_summary: str,
        content_json: str | None = None,
    ) -> SkillVersion:
        """Append a version derived from the analysis and mark its record applied.

        Both writes share one transaction: either the version exists and
        the record is applied, or neither.

        Raises:
            ValidationError: The record was already applied.
            NotFoundError: The article's skill was deleted.
        """
        _require(cycle, CycleState.COMMITTED)
        if cycle.diff_record_id is None:
            raise ValidationError("Cycle has no analysis to commit")

        article_id = self._article_id(cycle)
        try:
            with self.db.transaction() as session:
                article = self.articles.article_in(session, article_id)
                if article.skill_id is None:
                    raise NotFoundError("Skill", cycle.skill_id)
                self.articles.mark_applied_in(session, cycle.diff_record_id)
                version = self.skills.append_version(
                    session, article.skill_id, new_content, change_summary, content_json
                )
        except IntegrityError as e:
            raise ValidationError(f"Commit rejected by storage: {e.orig}") from e

        cycle.advance(CycleState.COMMITTED)
        cycle.committed_version = version.version_number
        self.log.info(
            "skill.evolved",
            skill_id=version.skill_id,
            version=version.version_number,
            record_id=cycle.diff_record_id,
        )
        self.hlog.committed(version.skill_id, version.version_number)
        return version

    # ── Conveniences for existing articles ────────────────────────────────

    def resume_cycle(self, article_id: int) -> EvolutionCycle:
        """A cycle for an article generated earlier, waiting for its edit."""
        article = self.articles.get_article(article_id)
        return EvolutionCycle(
            skill_id=article.skill_id,
            state=CycleState.AWAITING_EDIT,
            article_id=article.id,
            version_used=article.skill_version_used,
        )

    def analyze_article(
        self,
        article_id: int,
        modified: str | None = None,
        cancel: threading.Event | None = None,
    ) -> DiffRecord:
        """Diff and analyze an existing article.

        ``modified`` saves a new refinement first; otherwise the stored
        one is analyzed.
        """
        cycle = self.resume_cycle(article_id)
        if modified is not None:
            self.submit_edit(cycle, modified)
        self.compute_diff(cycle)
        return self.request_analysis(cycle, cancel=cancel)

    def apply_analysis(self, record_id: int, change_summary: str | None = None) -> SkillVersion:
        """Merge a record's rules into the current version and commit it.

        Reading the current version, merging and appending share one
        transaction, so a version committed by another writer meanwhile is
        either the base of the merge or comes after it, never lost.

        Raises:
            ValidationError: The analysis is not JSON, proposes nothing
                new, or was already applied.
            NotFoundError: Unknown record, or its article's skill was deleted.
        """
        record = self.articles.get_diff_record(record_id)
        if record.applied:
            raise ValidationError(f"Diff record {record_id} was already applied")

        analysis = parse_analysis(record.analysis_result)
        if analysis is None:
            raise ValidationError(f"Diff record {record_id} has no structured analysis")

        try:
            with self.db.transaction() as session:
                self.articles.mark_applied_in(session, record_id)
                article = self.articles.article_in(session, record.article_id)
                if article.skill_id is None:
                    raise NotFoundError("Skill", f"of article {article.id}")
                current = self.skills.current_version_in(session, article.skill_id)

                markdown, content_json, summary = merge_rules(
                    current.content_markdown, current.content_json, analysis
                )
                if markdown == current.content_markdown and content_json == current.content_json:
                    raise ValidationError(f"Diff record {record_id} proposes no new rules")

                version = self.skills.append_version(
                    session, article.skill_id, markdown, change_summary or summary, content_json
                )
        except IntegrityError as e:
            raise ValidationError(f"Commit rejected by storage: {e.orig}") from e

        self.log.info(
            "skill.evolved",
            skill_id=version.skill_id,
            version=version.version_number,
            base_version=current.version_number,
            record_id=record_id,
        )
        self.hlog.committed(version.skill_id, version.version_number)
        return version

    # ── Bootstrap ─────────────────────────────────────────────────────────

    def create_skill_from_samples(
        self,
        name: str,
        category: str | None,
        description: str | None,
        samples_text: str,
        cancel: threading.Event | None = None,
    ) -> Skill:
        """Extract a first version from the writer's own samples.

        ``samples_text`` holds one or more samples separated by the
        configured separator (a ``---`` line by default). The Skill, its
        version 1 and the samples are written in one transaction.

        Raises:
            ValidationError: No sample has any content.
            CapabilityError: The call failed. Nothing is written.
            CycleCancelledError: ``cancel`` was set. Nothing is written.
        """
        samples = [
            s.strip()
            for s in samples_text.split(self.config.pipeline.sample_separator)
            if s.strip()
        ]
        if not samples:
            raise ValidationError("Provide at least one sample")

        self.log.debug("pipeline.bootstrap.start", name=name, samples=len(samples))
        if cancel is not None and cancel.is_set():
            raise CycleCancelledError("Style extraction cancelled")

        messages: list[Message] = [
            {"role": "user", "content": build_analyze_style_prompt(samples)},
        ]
        try:
            text = self.capability.chat(messages, self.config.llm.analysis_temperature)
        except CapabilityError as e:
            self.log.error("pipeline.bootstrap.failed", error=str(e))
            self.hlog.failed("style extraction", str(e))
            raise

        if cancel is not None and cancel.is_set():
            self.hlog.cancelled("style extraction")
            raise CycleCancelledError("Style extraction cancelled")

        parsed = parse_analysis(text)
        if parsed is not None:
            markdown = style_json_to_markdown(name, parsed)
            content_json = json.dumps(parsed, ensure_ascii=False, indent=2)
        else:
            self.log.warning("pipeline.bootstrap.unstructured", chars=len(text))
            markdown, content_json = text, "{}"

        try:
            with self.db.transaction() as session:
                row = self.skills.insert_skill(
                    session,
                    name=name,
                    category=category,
                    description=description,
                    content_markdown=markdown,
                    content_json=content_json,
                    change_summary=BOOTSTRAP_SUMMARY,
                )
                self.skills.insert_samples(session, row.id, samples)
                skill = Skill.from_row(row)
        except IntegrityError as e:
            raise ValidationError(f"Skill rejected by storage: {e.orig}") from e

        self.log.info("skill.created", skill_id=skill.id, name=name, samples=len(samples))
        self.hlog.bootstrap_ready(skill.id, len(samples))
        return skill

    # ── Helpers ───────────────────────────────────────────────────────────

    def _call(
        self,
        cycle: EvolutionCycle,
        snapshot: tuple[CycleState, CycleState | None, str | None],
        step: str,
        messages: list[Message],
        temperature: float,
        cancel: threading.Event | None,
    ) -> str:
        """Run one capability call for a cycle in a *_REQUESTED state.

        No store lock is held here. On failure the cycle moves to FAILED;
        on cancellation it returns to ``snapshot``.
        """
        if cancel is not None and cancel.is_set():
            cycle.restore(snapshot)
            self.hlog.cancelled(step)
            raise CycleCancelledError(f"{step.capitalize()} cancelled")

        try:
            text = self.capability.chat(messages, temperature)
        except CapabilityError as e:
            cycle.fail(str(e))
            self.log.error(f"pipeline.{step}.failed", error=str(e), status_code=e.status_code)
            self.hlog.failed(step, str(e))
            raise

        if cancel is not None and cancel.is_set():
            cycle.restore(snapshot)
            self.log.info(f"pipeline.{step}.discarded", chars=len(text))
            self.hlog.cancelled(step)
            raise CycleCancelledError(f"{step.capitalize()} cancelled")
        return text

    def _article_id(self, cycle: EvolutionCycle) -> int:
        if cycle.article_id is None:
            raise ValidationError("Cycle has no article yet")
        return cycle.article_id


def _require(cycle: EvolutionCycle, target: CycleState) -> None:
    if not cycle.can_advance(target):
        raise InvalidTransitionError(cycle.state, target)
