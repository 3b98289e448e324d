"""
Human Log — Formatter and helper for evolution-cycle trace lines.

Produces short readable output so the writer can follow a cycle step by
step without technical noise.

Example:
    Draft → "Why remote work stalls" (skill 3, v4)
      OK (812 chars)
    Edit saved (article 17)
    Diff: +6 -2 (41 unchanged)
    Analysis → article 17 (style v5)
      OK (record 9)
    ✓ Skill 3 evolved to v6
"""

import logging
import sys

from .levels import HUMAN


class HumanFormatter:
    """Formats structured cycle events as readable text.

    Each event type has its own format. Unknown events return None and
    are not printed.
    """

    def format_event(self, event: str, **kw) -> str | None:
        """Format an event.

        Args:
            event: Event name (e.g. "pipeline.draft.request")
            **kw: Event parameters

        Returns:
            Formatted text, or None if the event has no human format
        """
        match event:

            # ── DRAFT ───────────────────────────────────────────────────
            case "pipeline.draft.request":
                topic = preview(kw.get("topic", "?"), 50)
                skill = kw.get("skill_id", "?")
                version = kw.get("version", "?")
                return f'\nDraft → "{topic}" (skill {skill}, v{version})'

            case "pipeline.draft.ready":
                chars = kw.get("chars", "?")
                return f"  OK ({chars} chars, article {kw.get('article_id', '?')})"

            # ── EDIT / DIFF ─────────────────────────────────────────────
            case "pipeline.edit.saved":
                return f"Edit saved (article {kw.get('article_id', '?')})"

            case "pipeline.diff.computed":
                ins = kw.get("inserted", 0)
                dele = kw.get("deleted", 0)
                eq = kw.get("equal", 0)
                return f"Diff: +{ins} -{dele} ({eq} unchanged)"

            # ── ANALYSIS ────────────────────────────────────────────────
            case "pipeline.analysis.request":
                article = kw.get("article_id", "?")
                version = kw.get("version")
                style = f"style v{version}" if version is not None else "no skill"
                return f"Analysis → article {article} ({style})"

            case "pipeline.analysis.ready":
                return f"  OK (record {kw.get('record_id', '?')})"

            # ── COMMIT ──────────────────────────────────────────────────
            case "pipeline.committed":
                skill = kw.get("skill_id", "?")
                version = kw.get("version", "?")
                return f"✓ Skill {skill} evolved to v{version}"

            case "pipeline.bootstrap.ready":
                samples = kw.get("samples", "?")
                return f"✓ Skill {kw.get('skill_id', '?')} created from {samples} samples"

            # ── FAILURES ────────────────────────────────────────────────
            case "pipeline.failed":
                step = kw.get("step", "?")
                error = kw.get("error", "unknown")
                return f"  ✗ {step} failed: {error}"

            case "pipeline.cancelled":
                step = kw.get("step", "?")
                return f"  ⚠  {step} result discarded (cancelled)"

            case _:
                return None


class HumanLogHandler(logging.Handler):
    """Logging handler that formats HUMAN records.

    Only handles records at exactly HUMAN (25). Writes to stderr so
    stdout pipes stay clean.
    """

    def __init__(self, stream=None) -> None:
        super().__init__(level=HUMAN)
        self.stream = stream or sys.stderr
        self.formatter_inst = HumanFormatter()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if record.levelno != HUMAN:
                return

            # structlog leaves the event dict in record.msg when it is
            # wrapped for a ProcessorFormatter, plain text otherwise
            if isinstance(record.msg, dict):
                kw = dict(record.msg)
                event = kw.pop("event", "")
            else:
                event = getattr(record, "event", None) or record.getMessage()
                kw = {
                    k: v for k, v in record.__dict__.items()
                    if not k.startswith("_") and k not in _RECORD_FIELDS
                }

            formatted = self.formatter_inst.format_event(event, **kw)
            if formatted is not None:
                self.stream.write(formatted + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


_RECORD_FIELDS = frozenset({
    "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName", "name", "event",
})


class HumanLog:
    """Typed helper to emit HUMAN events.

    Usage:
        hlog = HumanLog(structlog.get_logger())
        hlog.draft_requested(skill_id=3, version=4, topic="Remote work")
        hlog.committed(skill_id=3, version=5)
    """

    def __init__(self, logger) -> None:
        self._log = logger

    def draft_requested(self, skill_id: int, version: int, topic: str) -> None:
        self._log.log(HUMAN, "pipeline.draft.request", skill_id=skill_id, version=version, topic=topic)

    def draft_ready(self, article_id: int, chars: int) -> None:
        self._log.log(HUMAN, "pipeline.draft.ready", article_id=article_id, chars=chars)

    def edit_saved(self, article_id: int) -> None:
        self._log.log(HUMAN, "pipeline.edit.saved", article_id=article_id)

    def diff_computed(self, equal: int, inserted: int, deleted: int) -> None:
        self._log.log(HUMAN, "pipeline.diff.computed", equal=equal, inserted=inserted, deleted=deleted)

    def analysis_requested(self, article_id: int, version: int | None) -> None:
        self._log.log(HUMAN, "pipeline.analysis.request", article_id=article_id, version=version)

    def analysis_ready(self, record_id: int) -> None:
        self._log.log(HUMAN, "pipeline.analysis.ready", record_id=record_id)

    def committed(self, skill_id: int, version: int) -> None:
        self._log.log(HUMAN, "pipeline.committed", skill_id=skill_id, version=version)

    def bootstrap_ready(self, skill_id: int, samples: int) -> None:
        self._log.log(HUMAN, "pipeline.bootstrap.ready", skill_id=skill_id, samples=samples)

    def failed(self, step: str, error: str) -> None:
        self._log.log(HUMAN, "pipeline.failed", step=step, error=error)

    def cancelled(self, step: str) -> None:
        self._log.log(HUMAN, "pipeline.cancelled", step=step)


def preview(text: str, limit: int = 60) -> str:
    """Single-line, length-capped preview of a text for log lines."""
    flat = " ".join(str(text).split())
    return flat[:limit] + "..." if len(flat) > limit else flat
