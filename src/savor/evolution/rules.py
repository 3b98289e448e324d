"""
Rules merge - Turn an edit analysis into the next version's content.

The pipeline never applies an analysis by itself. A caller that accepts
one uses ``merge_rules`` to derive new Markdown and structured content
from the current version, then commits them.
"""

import json
import re
from typing import Any

__all__ = [
    "LEARNED_RULES_HEADING",
    "RULE_FIELDS",
    "extract_new_rules",
    "merge_rules",
    "parse_analysis",
]

LEARNED_RULES_HEADING = "## Learned rules"

# analysis key -> (structured content key, Markdown bullet prefix)
RULE_FIELDS: dict[str, tuple[str, str]] = {
    "add_to_style_principles": ("style_principles", "Principle"),
    "add_to_blocklist_words": ("blocklist_words", "Avoid word"),
    "add_to_blocklist_patterns": ("blocklist_patterns", "Avoid pattern"),
    "other_observations": ("observations", "Note"),
}

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)


def parse_analysis(text: str) -> dict[str, Any] | None:
    """Parse the analysis answer as a JSON object.

    Models sometimes wrap the JSON in a code fence or add a sentence
    around it; both are tolerated. Returns None when no object is found.
    """
    candidate = text.strip()
    fenced = _FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    for attempt in (candidate, _outer_braces(candidate)):
        if not attempt:
            continue
        try:
            parsed = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _outer_braces(text: str) -> str | None:
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def extract_new_rules(analysis: dict[str, Any]) -> dict[str, list[str]]:
    """The non-empty rule lists of an analysis, stripped of blanks."""
    raw = analysis.get("new_rules")
    if not isinstance(raw, dict):
        return {}
    rules: dict[str, list[str]] = {}
    for key in RULE_FIELDS:
        values = raw.get(key)
        if not isinstance(values, list):
            continue
        items = [str(v).strip() for v in values if str(v).strip()]
        if items:
            rules[key] = items
    return rules


def merge_rules(
    markdown: str,
    content_json: str,
    analysis: dict[str, Any],
) -> tuple[str, str, str]:
    """Fold an analysis' new rules into a version's content.

    Rules already present are skipped, so merging the same analysis twice
    changes nothing the second time. Structured content that is not a JSON
    object is replaced by one holding only the learned lists.

    Args:
        markdown: Current version's Markdown.
        content_json: Current version's structured content.
        analysis: Parsed analysis answer.

    Returns:
        (new_markdown, new_content_json, change_summary). The content is
        returned unchanged when the analysis proposes nothing new.
    """
    rules = extract_new_rules(analysis)
    summary = str(analysis.get("summary") or "").strip() or "Rules learned from a human edit"

    try:
        structured = json.loads(content_json) if content_json else {}
    except json.JSONDecodeError:
        structured = {}
    if not isinstance(structured, dict):
        structured = {}

    bullets: list[str] = []
    json_changed = False
    for key, items in rules.items():
        target, prefix = RULE_FIELDS[key]
        existing = structured.get(target)
        if not isinstance(existing, list):
            existing = []
        for item in items:
            bullet = f"- {prefix}: {item}"
            if bullet not in markdown and bullet not in bullets:
                bullets.append(bullet)
            if item not in existing:
                existing.append(item)
                json_changed = True
        structured[target] = existing

    new_markdown = _append_learned(markdown, bullets) if bullets else markdown
    new_json = json.dumps(structured, ensure_ascii=False, indent=2) if json_changed else content_json
    return new_markdown, new_json, summary


def _append_learned(markdown: str, bullets: list[str]) -> str:
    """Add bullets to the end of the learned-rules section, creating it if needed."""
    lines = markdown.rstrip("\n").split("\n") if markdown.strip() else []

    try:
        start = lines.index(LEARNED_RULES_HEADING)
    except ValueError:
        if lines:
            lines.append("")
        lines.extend([LEARNED_RULES_HEADING, "", *bullets])
        return "\n".join(lines) + "\n"

    # Section ends at the next heading of the same or higher level
    end = len(lines)
    for i in range(start + 1, len(lines)):
        if re.match(r"^#{1,2} ", lines[i]):
            end = i
            break

    insert_at = end
    while insert_at > start + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    lines[insert_at:insert_at] = bullets
    return "\n".join(lines) + "\n"
