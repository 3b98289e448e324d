"""
Tests for the logging system.

Covers:
- HumanFormatter output per pipeline event
- HumanLogHandler: only HUMAN records, both record shapes
- console level selection
- configure_logging handler wiring
"""

import io
import logging

import pytest

from savor.config.schema import LoggingConfig
from savor.logging import HUMAN, HumanLogHandler, configure_logging, preview
from savor.logging.human import HumanFormatter
from savor.logging.setup import _console_level


@pytest.fixture
def formatter() -> HumanFormatter:
    return HumanFormatter()


@pytest.fixture(autouse=True)
def restore_root_handlers():
    saved = list(logging.root.handlers)
    yield
    logging.root.handlers[:] = saved


def _record(msg, level: int = HUMAN, **extra) -> logging.LogRecord:
    record = logging.LogRecord("savor", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ── Tests: HumanFormatter ────────────────────────────────────────────────


class TestHumanFormatter:
    def test_draft_request(self, formatter):
        line = formatter.format_event("pipeline.draft.request", skill_id=3, version=4, topic="Remote work")
        assert line == '\nDraft → "Remote work" (skill 3, v4)'

    def test_diff(self, formatter):
        line = formatter.format_event("pipeline.diff.computed", equal=41, inserted=6, deleted=2)
        assert line == "Diff: +6 -2 (41 unchanged)"

    def test_analysis_without_skill(self, formatter):
        line = formatter.format_event("pipeline.analysis.request", article_id=7, version=None)
        assert line == "Analysis → article 7 (no skill)"

    def test_committed(self, formatter):
        assert formatter.format_event("pipeline.committed", skill_id=3, version=6) == "✓ Skill 3 evolved to v6"

    def test_failure(self, formatter):
        line = formatter.format_event("pipeline.failed", step="analysis", error="timeout")
        assert line == "  ✗ analysis failed: timeout"

    def test_unknown_event(self, formatter):
        assert formatter.format_event("skill.created", skill_id=1) is None


# ── Tests: HumanLogHandler ───────────────────────────────────────────────


class TestHumanLogHandler:
    def test_structlog_event_dict(self):
        stream = io.StringIO()
        handler = HumanLogHandler(stream=stream)
        handler.emit(_record({"event": "pipeline.edit.saved", "article_id": 5}))
        assert stream.getvalue() == "Edit saved (article 5)\n"

    def test_plain_record_with_extras(self):
        stream = io.StringIO()
        handler = HumanLogHandler(stream=stream)
        handler.emit(_record("pipeline.analysis.ready", record_id=9))
        assert stream.getvalue() == "  OK (record 9)\n"

    def test_other_levels_ignored(self):
        stream = io.StringIO()
        handler = HumanLogHandler(stream=stream)
        handler.emit(_record({"event": "pipeline.edit.saved", "article_id": 5}, level=logging.INFO))
        assert stream.getvalue() == ""


# ── Tests: setup ─────────────────────────────────────────────────────────


class TestSetup:
    @pytest.mark.parametrize(
        "level, verbose, expected",
        [
            ("human", 0, logging.WARNING),
            ("error", 0, logging.ERROR),
            ("debug", 0, logging.DEBUG),
            ("human", 1, logging.INFO),
            ("error", 2, logging.DEBUG),
        ],
    )
    def test_console_level(self, level, verbose, expected):
        assert _console_level(LoggingConfig(level=level, verbose=verbose)) == expected

    def test_quiet_installs_no_console(self):
        configure_logging(LoggingConfig(), quiet=True)
        assert logging.root.handlers == []

    def test_default_has_human_and_console(self):
        configure_logging(LoggingConfig())
        assert any(isinstance(h, HumanLogHandler) for h in logging.root.handlers)
        assert len(logging.root.handlers) == 2

    def test_error_level_drops_human_handler(self):
        configure_logging(LoggingConfig(level="error"))
        assert not any(isinstance(h, HumanLogHandler) for h in logging.root.handlers)
        assert len(logging.root.handlers) == 1

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "savor.jsonl"
        configure_logging(LoggingConfig(file=log_file), quiet=True)
        assert log_file.parent.is_dir()
        assert any(isinstance(h, logging.FileHandler) for h in logging.root.handlers)


def test_preview():
    assert preview("a\n  b   c") == "a b c"
    assert preview("x" * 70, 10) == "x" * 10 + "..."
