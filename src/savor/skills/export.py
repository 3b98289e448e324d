"""
Export — Read-only projections of a skill's current version.

- Markdown: a self-contained document ready to paste as a system prompt.
- JSON: skill metadata plus the current version's structured content.

Both read the skill and its current version in one locked read, so the
metadata and the content always belong to the same version.
"""

import json
from typing import Any

from ..storage.database import Database
from .models import Skill, SkillVersion
from .store import SkillStore

__all__ = ["EXPORTED_BY", "export_json", "export_markdown"]

EXPORTED_BY = "Savor"


def export_markdown(database: Database, skill_id: int) -> str:
    """Render the skill as a Markdown document.

    Raises:
        NotFoundError: If the skill does not exist.
    """
    skill, version = _snapshot(database, skill_id)
    return (
        f"# {skill.name} — Writing Style Skill\n\n"
        f"**Category**: {skill.category} | **Version**: v{version.version_number}\n\n"
        f"{skill.description}\n\n"
        "---\n\n"
        f"{version.content_markdown}\n\n"
        "---\n\n"
        f"> Exported by {EXPORTED_BY} | Ready to use as a system prompt\n"
    )


def export_json(database: Database, skill_id: int) -> str:
    """Render the skill as pretty-printed JSON.

    ``skill`` holds the parsed structured content, or null when the stored
    content is not valid JSON.

    Raises:
        NotFoundError: If the skill does not exist.
    """
    skill, version = _snapshot(database, skill_id)

    structured: Any
    try:
        structured = json.loads(version.content_json)
    except json.JSONDecodeError:
        structured = None

    export = {
        "name": skill.name,
        "category": skill.category,
        "description": skill.description,
        "version": version.version_number,
        "skill": structured,
        "exported_by": EXPORTED_BY,
    }
    return json.dumps(export, indent=2, ensure_ascii=False)


def _snapshot(database: Database, skill_id: int) -> tuple[Skill, SkillVersion]:
    store = SkillStore(database)
    with database.read() as session:
        return store.skill_in(session, skill_id), store.current_version_in(session, skill_id)
