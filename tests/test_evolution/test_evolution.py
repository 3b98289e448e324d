"""
Tests for the Evolution Pipeline.

Covers:
- EvolutionCycle transitions and InvalidTransitionError
- request_draft: provenance, prompt, temperature, failures, cancellation
- submit_edit / compute_diff
- request_analysis: current style at analysis time, failure and retry,
  identical texts, cancellation
- commit: version + applied flag in one transaction, double apply, deleted skill
- analyze_article / apply_analysis
- create_skill_from_samples
- the store lock is free during every capability call
"""

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from savor.articles import ArticleStatus
from savor.config.schema import AppConfig, StorageConfig
from savor.diff import ChangeTag
from savor.errors import CapabilityError, NotFoundError, ValidationError
import savor.evolution.pipeline as pipeline_module
from savor.evolution import (
    BOOTSTRAP_SUMMARY,
    CycleCancelledError,
    CycleState,
    EvolutionCycle,
    EvolutionPipeline,
    InvalidTransitionError,
)
from savor.evolution.rules import merge_rules
from savor.storage import Database

ANALYSIS = {
    "modification_analysis": [
        {"type": "word choice", "description": "dropped 'delve'", "intent": "plainer words"},
    ],
    "new_rules": {
        "add_to_style_principles": ["Prefer short sentences"],
        "add_to_blocklist_words": ["delve"],
        "add_to_blocklist_patterns": [],
        "other_observations": [],
    },
    "summary": "Plainer vocabulary",
}


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def database(tmp_path: Path):
    db = Database(StorageConfig(path=tmp_path / "savor.db"))
    yield db
    db.close()


@pytest.fixture
def capability() -> MagicMock:
    cap = MagicMock()
    cap.chat.return_value = "Hello\nWorld\n"
    return cap


@pytest.fixture
def pipeline(database: Database, capability: MagicMock) -> EvolutionPipeline:
    return EvolutionPipeline(database, capability, AppConfig())


@pytest.fixture
def skill_id(pipeline: EvolutionPipeline) -> int:
    skill = pipeline.skills.create_skill("S", content_markdown="v1 rules")
    pipeline.skills.evolve(skill.id, "v2 rules", "edit")
    return skill.id


def _edited_cycle(pipeline: EvolutionPipeline, skill_id: int, edit: str) -> EvolutionCycle:
    cycle = pipeline.request_draft(None, skill_id, "Remote work")
    pipeline.submit_edit(cycle, edit)
    pipeline.compute_diff(cycle)
    return cycle


# ── Tests: cycle state ───────────────────────────────────────────────────


class TestCycleState:
    def test_happy_path_transitions(self):
        cycle = EvolutionCycle()
        for state in (
            CycleState.DRAFT_REQUESTED,
            CycleState.DRAFT_READY,
            CycleState.AWAITING_EDIT,
            CycleState.DIFFING,
            CycleState.ANALYSIS_REQUESTED,
            CycleState.ANALYSIS_READY,
            CycleState.COMMITTED,
        ):
            cycle.advance(state)
        assert cycle.is_finished

    def test_skipping_steps_rejected(self):
        cycle = EvolutionCycle()
        with pytest.raises(InvalidTransitionError):
            cycle.advance(CycleState.ANALYSIS_REQUESTED)

    def test_invalid_transition_is_validation_error(self):
        assert issubclass(InvalidTransitionError, ValidationError)

    def test_failed_only_retries_failed_step(self):
        cycle = EvolutionCycle(state=CycleState.ANALYSIS_REQUESTED)
        cycle.fail("boom")
        assert cycle.state is CycleState.FAILED
        assert cycle.failed_step is CycleState.ANALYSIS_REQUESTED
        assert not cycle.can_advance(CycleState.DRAFT_REQUESTED)
        cycle.advance(CycleState.ANALYSIS_REQUESTED)
        assert cycle.error is None

    def test_committed_is_terminal(self):
        cycle = EvolutionCycle(state=CycleState.COMMITTED)
        assert not cycle.can_advance(CycleState.AWAITING_EDIT)


# ── Tests: draft ─────────────────────────────────────────────────────────


class TestDraft:
    def test_persists_article_with_provenance(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "Remote work")

        assert cycle.state is CycleState.DRAFT_READY
        assert cycle.version_used == 2
        article = pipeline.articles.get_article(cycle.article_id)
        assert article.ai_generated_content == "Hello\nWorld\n"
        assert article.skill_version_used == 2
        assert article.skill_id == skill_id
        assert article.title == "Remote work"
        assert article.status == ArticleStatus.EDITING.value

    def test_prompt_and_temperature(self, pipeline, capability, skill_id):
        pipeline.request_draft(None, skill_id, "Remote work")
        messages, temperature = capability.chat.call_args.args
        assert temperature == 0.7
        assert messages[0]["role"] == "user"
        assert "v2 rules" in messages[0]["content"]
        assert "Remote work" in messages[0]["content"]

    def test_provenance_frozen_when_skill_evolves_during_call(self, pipeline, capability, skill_id):
        def evolve_meanwhile(messages, temperature):
            pipeline.skills.evolve(skill_id, "v3 rules", "meanwhile")
            return "draft"

        capability.chat.side_effect = evolve_meanwhile
        cycle = pipeline.request_draft(None, skill_id, "T")
        assert pipeline.articles.get_article(cycle.article_id).skill_version_used == 2

    def test_failure_writes_nothing(self, pipeline, capability, skill_id):
        capability.chat.side_effect = CapabilityError("rate limited", status_code=429, body="slow down")
        cycle = EvolutionCycle()

        with pytest.raises(CapabilityError) as exc_info:
            pipeline.request_draft(cycle, skill_id, "T")

        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "slow down"
        assert cycle.state is CycleState.FAILED
        assert cycle.failed_step is CycleState.DRAFT_REQUESTED
        assert pipeline.articles.list_articles() == []

    def test_retry_after_failure(self, pipeline, capability, skill_id):
        capability.chat.side_effect = [CapabilityError("down"), "second try"]
        cycle = EvolutionCycle()
        with pytest.raises(CapabilityError):
            pipeline.request_draft(cycle, skill_id, "T")
        pipeline.request_draft(cycle, skill_id, "T")
        assert cycle.state is CycleState.DRAFT_READY
        assert len(pipeline.articles.list_articles()) == 1

    def test_unknown_skill(self, pipeline, capability):
        cycle = EvolutionCycle()
        with pytest.raises(NotFoundError):
            pipeline.request_draft(cycle, 404, "T")
        assert cycle.state is CycleState.IDLE
        capability.chat.assert_not_called()

    def test_empty_topic(self, pipeline, capability, skill_id):
        with pytest.raises(ValidationError):
            pipeline.request_draft(None, skill_id, "   ")
        capability.chat.assert_not_called()

    def test_cancelled_during_call_discards(self, pipeline, capability, skill_id):
        cancel = threading.Event()

        def cancel_meanwhile(messages, temperature):
            cancel.set()
            return "late draft"

        capability.chat.side_effect = cancel_meanwhile
        cycle = EvolutionCycle()
        with pytest.raises(CycleCancelledError):
            pipeline.request_draft(cycle, skill_id, "T", cancel=cancel)
        assert cycle.state is CycleState.IDLE
        assert pipeline.articles.list_articles() == []

    def test_cancelled_before_call_skips_capability(self, pipeline, capability, skill_id):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CycleCancelledError):
            pipeline.request_draft(None, skill_id, "T", cancel=cancel)
        capability.chat.assert_not_called()


# ── Tests: edit and diff ─────────────────────────────────────────────────


class TestEditAndDiff:
    def test_scenario_insert_only(self, pipeline, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        pipeline.submit_edit(cycle, "Hello\nBeautiful\nWorld\n")
        chunks = pipeline.compute_diff(cycle)

        assert cycle.state is CycleState.DIFFING
        assert cycle.version_used == 2
        assert any(c.tag is ChangeTag.INSERT for c in chunks)
        assert not any(c.tag is ChangeTag.DELETE for c in chunks)

    def test_edit_is_verbatim(self, pipeline, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        article = pipeline.submit_edit(cycle, "  spaced\t\n")
        assert article.user_refined_content == "  spaced\t\n"
        assert article.ai_generated_content == "Hello\nWorld\n"

    def test_diff_before_draft_rejected(self, pipeline):
        with pytest.raises(InvalidTransitionError):
            pipeline.compute_diff(EvolutionCycle())

    def test_diff_is_pure(self, pipeline, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\nThere\n")
        first = list(cycle.chunks)
        assert pipeline.compute_diff(cycle) == first


# ── Tests: analysis ──────────────────────────────────────────────────────


class TestAnalysis:
    def test_persists_unapplied_record(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\nBeautiful\nWorld\n")
        capability.chat.return_value = json.dumps(ANALYSIS)

        record = pipeline.request_analysis(cycle)

        assert cycle.state is CycleState.ANALYSIS_READY
        assert cycle.diff_record_id == record.id
        assert record.applied is False
        assert record.diff_data == "  Hello\n+ Beautiful\n  World\n"
        assert record.analysis_result == json.dumps(ANALYSIS)
        assert json.loads(record.extracted_rules) == {
            "add_to_style_principles": ["Prefer short sentences"],
            "add_to_blocklist_words": ["delve"],
        }

    def test_uses_style_current_at_analysis_time(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        pipeline.skills.evolve(skill_id, "v3 rules", "newer")

        pipeline.request_analysis(cycle)

        messages, temperature = capability.chat.call_args.args
        assert temperature == 0.3
        assert "v3 rules" in messages[0]["content"]
        assert "- World" in messages[0]["content"]

    def test_unstructured_answer_kept_raw(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        capability.chat.return_value = "free text, no json"
        record = pipeline.request_analysis(cycle)
        assert record.extracted_rules == "free text, no json"

    def test_unedited_article_rejected(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.reset_mock()
        with pytest.raises(ValidationError, match="no edit"):
            pipeline.analyze_article(cycle.article_id)
        capability.chat.assert_not_called()

    def test_identical_texts_rejected(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\nWorld\n")
        capability.chat.reset_mock()
        with pytest.raises(ValidationError, match="No changes"):
            pipeline.request_analysis(cycle)
        capability.chat.assert_not_called()
        assert cycle.state is CycleState.DIFFING

    def test_failure_keeps_edit_and_retries(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\nEveryone\n")
        capability.chat.side_effect = CapabilityError("timeout")

        with pytest.raises(CapabilityError):
            pipeline.request_analysis(cycle)

        assert cycle.state is CycleState.FAILED
        article = pipeline.articles.get_article(cycle.article_id)
        assert article.user_refined_content == "Hello\nEveryone\n"
        assert pipeline.articles.list_diff_records(cycle.article_id) == []

        capability.chat.side_effect = None
        capability.chat.return_value = "ok"
        record = pipeline.request_analysis(cycle)
        assert cycle.state is CycleState.ANALYSIS_READY
        assert [r.id for r in pipeline.articles.list_diff_records(cycle.article_id)] == [record.id]

    def test_repeat_analysis_not_deduplicated(self, pipeline, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        pipeline.request_analysis(cycle)
        pipeline.submit_edit(cycle, "Hello\nagain\n")
        pipeline.compute_diff(cycle)
        pipeline.request_analysis(cycle)
        assert len(pipeline.articles.list_diff_records(cycle.article_id)) == 2

    def test_skill_deleted_before_analysis(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        pipeline.skills.delete_skill(skill_id)
        pipeline.request_analysis(cycle)
        assert "## Current Writing Style Skill\n\n\n" in capability.chat.call_args.args[0][0]["content"]

    def test_cancelled_analysis_discards(self, pipeline, capability, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        cancel = threading.Event()

        def cancel_meanwhile(messages, temperature):
            cancel.set()
            return "late"

        capability.chat.side_effect = cancel_meanwhile
        with pytest.raises(CycleCancelledError):
            pipeline.request_analysis(cycle, cancel=cancel)
        assert cycle.state is CycleState.DIFFING
        assert pipeline.articles.list_diff_records(cycle.article_id) == []


# ── Tests: commit ────────────────────────────────────────────────────────


class TestCommit:
    def _ready(self, pipeline, skill_id) -> EvolutionCycle:
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        pipeline.request_analysis(cycle)
        return cycle

    def test_appends_version_and_marks_applied(self, pipeline, skill_id):
        cycle = self._ready(pipeline, skill_id)
        version = pipeline.commit(cycle, "v3 rules", "learned")

        assert version.version_number == 3
        assert cycle.state is CycleState.COMMITTED
        assert cycle.committed_version == 3
        assert pipeline.articles.get_diff_record(cycle.diff_record_id).applied is True
        assert pipeline.skills.get_version(skill_id, 2).content_markdown == "v2 rules"

    def test_already_applied_writes_nothing(self, pipeline, skill_id):
        cycle = self._ready(pipeline, skill_id)
        pipeline.articles.mark_applied(cycle.diff_record_id)

        with pytest.raises(ValidationError):
            pipeline.commit(cycle, "v3 rules", "learned")
        assert pipeline.skills.get_skill(skill_id).current_version == 2
        assert pipeline.skills.count_versions(skill_id) == 2

    def test_deleted_skill(self, pipeline, skill_id):
        cycle = self._ready(pipeline, skill_id)
        pipeline.skills.delete_skill(skill_id)
        with pytest.raises(NotFoundError):
            pipeline.commit(cycle, "v3", "learned")
        assert pipeline.articles.get_diff_record(cycle.diff_record_id).applied is False

    def test_commit_requires_analysis(self, pipeline, skill_id):
        cycle = _edited_cycle(pipeline, skill_id, "Hello\n")
        with pytest.raises(InvalidTransitionError):
            pipeline.commit(cycle, "v3", "too early")


# ── Tests: conveniences ──────────────────────────────────────────────────


class TestExistingArticles:
    def test_analyze_article_with_new_edit(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = json.dumps(ANALYSIS)

        record = pipeline.analyze_article(cycle.article_id, modified="Hello\nthere\n")

        assert record.article_id == cycle.article_id
        assert pipeline.articles.get_article(cycle.article_id).user_refined_content == "Hello\nthere\n"

    def test_apply_analysis_merges_rules(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = json.dumps(ANALYSIS)
        record = pipeline.analyze_article(cycle.article_id, modified="Hello\n")

        version = pipeline.apply_analysis(record.id)

        assert version.version_number == 3
        assert version.change_summary == "Plainer vocabulary"
        assert "- Principle: Prefer short sentences" in version.content_markdown
        assert "- Avoid word: delve" in version.content_markdown
        assert version.content_markdown.startswith("v2 rules")
        assert json.loads(version.content_json)["blocklist_words"] == ["delve"]
        assert pipeline.articles.get_diff_record(record.id).applied is True

    def test_apply_keeps_version_committed_meanwhile(self, pipeline, capability, skill_id, monkeypatch):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = json.dumps(ANALYSIS)
        record = pipeline.analyze_article(cycle.article_id, modified="Hello\n")

        writer = threading.Thread(
            target=pipeline.skills.evolve, args=(skill_id, "v3 written concurrently", "other writer")
        )
        blocked: list[bool] = []

        def merge_with_concurrent_writer(*args):
            writer.start()
            writer.join(timeout=0.2)
            blocked.append(writer.is_alive())
            return merge_rules(*args)

        monkeypatch.setattr(pipeline_module, "merge_rules", merge_with_concurrent_writer)
        applied = pipeline.apply_analysis(record.id)
        writer.join(timeout=5)

        assert blocked == [True]
        assert applied.version_number == 3
        assert applied.content_markdown.startswith("v2 rules")
        head = pipeline.skills.get_current_version(skill_id)
        assert head.version_number == 4
        assert head.content_markdown == "v3 written concurrently"

    def test_apply_to_deleted_skill_marks_nothing(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = json.dumps(ANALYSIS)
        record = pipeline.analyze_article(cycle.article_id, modified="Hello\n")
        pipeline.skills.delete_skill(skill_id)

        with pytest.raises(NotFoundError):
            pipeline.apply_analysis(record.id)
        assert pipeline.articles.get_diff_record(record.id).applied is False

    def test_apply_twice_rejected(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = json.dumps(ANALYSIS)
        record = pipeline.analyze_article(cycle.article_id, modified="Hello\n")
        pipeline.apply_analysis(record.id)
        with pytest.raises(ValidationError):
            pipeline.apply_analysis(record.id)
        assert pipeline.skills.get_skill(skill_id).current_version == 3

    def test_apply_unstructured_rejected(self, pipeline, capability, skill_id):
        cycle = pipeline.request_draft(None, skill_id, "T")
        capability.chat.return_value = "not json"
        record = pipeline.analyze_article(cycle.article_id, modified="Hello\n")
        with pytest.raises(ValidationError):
            pipeline.apply_analysis(record.id)


# ── Tests: bootstrap ─────────────────────────────────────────────────────


class TestBootstrap:
    def test_creates_skill_and_samples(self, pipeline, capability):
        capability.chat.return_value = json.dumps({"tone": "Dry", "style_principles": ["Short"]})

        skill = pipeline.create_skill_from_samples(
            "Mine", "Blog", "From my posts", "First post\n---\nSecond post\n---\n  \n"
        )

        version = pipeline.skills.get_version(skill.id, 1)
        assert version.change_summary == BOOTSTRAP_SUMMARY
        assert "## Tone" in version.content_markdown
        assert "- Short" in version.content_markdown
        assert json.loads(version.content_json)["tone"] == "Dry"
        assert [s.content for s in pipeline.skills.list_samples(skill.id)] == ["First post", "Second post"]
        assert capability.chat.call_args.args[1] == 0.3

    def test_unstructured_answer_kept(self, pipeline, capability):
        capability.chat.return_value = "Writes plainly."
        skill = pipeline.create_skill_from_samples("Mine", None, None, "sample")
        version = pipeline.skills.get_version(skill.id, 1)
        assert version.content_markdown == "Writes plainly."
        assert version.content_json == "{}"

    def test_no_samples(self, pipeline, capability):
        with pytest.raises(ValidationError, match="at least one sample"):
            pipeline.create_skill_from_samples("Mine", None, None, " \n---\n ")
        capability.chat.assert_not_called()
        assert pipeline.skills.list_skills() == []

    def test_failure_writes_nothing(self, pipeline, capability):
        capability.chat.side_effect = CapabilityError("bad key", status_code=401)
        with pytest.raises(CapabilityError):
            pipeline.create_skill_from_samples("Mine", None, None, "sample")
        assert pipeline.skills.list_skills() == []


# ── Tests: lock discipline ───────────────────────────────────────────────


class TestLockDiscipline:
    def test_lock_free_during_capability_calls(self, pipeline, capability, database, skill_id):
        seen: list[bool] = []

        def check_lock(messages, temperature):
            seen.append(database.locked)
            # Another thread can use the store while the call is in flight
            reader = threading.Thread(target=pipeline.skills.list_skills)
            reader.start()
            reader.join(timeout=5)
            seen.append(reader.is_alive())
            return "Hello\n"

        capability.chat.side_effect = check_lock
        cycle = pipeline.request_draft(None, skill_id, "T")
        pipeline.submit_edit(cycle, "Bye\n")
        pipeline.compute_diff(cycle)
        pipeline.request_analysis(cycle)
        pipeline.create_skill_from_samples("Other", None, None, "sample")

        assert seen == [False] * 6
