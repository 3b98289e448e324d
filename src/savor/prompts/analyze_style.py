"""
Style extraction prompt: build a first Skill from a writer's own samples.

The model answers with a JSON description of the style, which is kept as
the version's structured content and rendered to Markdown for the prompt
that later drafts are generated under.
"""

import json
from typing import Any

# Section order of the rendered Markdown: (json key, heading)
_SECTIONS = [
    ("identity", "Identity"),
    ("tone", "Tone"),
    ("style_principles", "Style principles"),
    ("vocabulary", "Vocabulary"),
    ("sentence_patterns", "Sentence patterns"),
    ("structure", "Structure"),
    ("blocklist_words", "Blocklist: words"),
    ("blocklist_patterns", "Blocklist: patterns"),
    ("examples", "Examples"),
]


def build_analyze_style_prompt(samples: list[str]) -> str:
    """Prompt asking for a structured style description of ``samples``."""
    joined = "\n\n---\n\n".join(
        f"### Sample {i}\n\n{text}" for i, text in enumerate(samples, start=1)
    )
    return f"""You are a writing-style analyst. Study the author's original writing samples below and describe their style precisely enough that a ghostwriter could imitate it.

## Writing samples

{joined}

---

Answer with this JSON (no markdown code fences):

{{
  "identity": "who the author sounds like and writes for",
  "tone": "the overall tone in one or two sentences",
  "style_principles": ["concrete, actionable style rules"],
  "vocabulary": ["terms and expressions the author habitually uses"],
  "sentence_patterns": ["characteristic sentence shapes"],
  "structure": ["how pieces are usually organized"],
  "blocklist_words": ["words the author never uses"],
  "blocklist_patterns": ["phrasings the author avoids"],
  "examples": ["short representative quotes from the samples"]
}}

Guidelines:
1. Base every rule on evidence in the samples
2. Prefer specific rules over general advice
3. Lists may be empty when the samples show nothing for them"""


def style_json_to_markdown(name: str, style: dict[str, Any]) -> str:
    """Render a style description as the Skill's Markdown content.

    Known keys come first in a fixed order; unknown keys follow under
    their own name so nothing the model returned is lost.
    """
    lines = [f"# {name}", ""]
    seen = set()

    for key, heading in _SECTIONS:
        if key in style:
            seen.add(key)
            lines.extend(_render_section(heading, style[key]))

    for key, value in style.items():
        if key not in seen:
            lines.extend(_render_section(key.replace("_", " ").capitalize(), value))

    return "\n".join(lines).rstrip() + "\n"


def _render_section(heading: str, value: Any) -> list[str]:
    out = [f"## {heading}", ""]
    if isinstance(value, list):
        if not value:
            return []
        out.extend(f"- {_as_text(item)}" for item in value)
    elif isinstance(value, dict):
        out.extend(f"- **{k}**: {_as_text(v)}" for k, v in value.items())
    else:
        text = _as_text(value).strip()
        if not text:
            return []
        out.append(text)
    out.append("")
    return out


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)
