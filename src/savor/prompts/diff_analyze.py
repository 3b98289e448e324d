"""
Analysis prompt: infer style rules from a human's edit of a draft.

The answer is a JSON object:

    {
      "modification_analysis": [{"type", "description", "intent"}, ...],
      "new_rules": {
        "add_to_style_principles": [...],
        "add_to_blocklist_words": [...],
        "add_to_blocklist_patterns": [...],
        "other_observations": [...]
      },
      "summary": "..."
    }

``savor.evolution.rules`` reads it back.
"""


def build_diff_analyze_prompt(
    original: str,
    modified: str,
    diff_summary: str,
    current_skill: str,
) -> str:
    return f"""You are a writing-style analyst. The user manually edited an AI-generated article. Analyze the writing preferences and style rules behind those edits.

## Original AI draft

{original}

## User's edited version

{modified}

## Diff summary

{diff_summary}

## Current Writing Style Skill

{current_skill}

---

Analyze the intent of the user's edits and answer with this JSON (no markdown code fences):

{{
  "modification_analysis": [
    {{
      "type": "word choice | sentence structure | restructuring | content added/removed | tone",
      "description": "what was changed",
      "intent": "the likely reason for the change"
    }}
  ],
  "new_rules": {{
    "add_to_style_principles": ["style principles to add"],
    "add_to_blocklist_words": ["words to forbid"],
    "add_to_blocklist_patterns": ["sentence patterns to forbid"],
    "other_observations": ["other style preferences observed"]
  }},
  "summary": "one sentence on how this edit should improve the Skill"
}}

Guidelines:
1. Look for systematic preferences, not one-off content corrections
2. Separate content edits (which do not affect the Skill) from style edits (which belong in it)
3. New rules must be concrete and actionable, not vague
4. If the edits are minor or carry no style meaning, new_rules may hold empty lists"""
