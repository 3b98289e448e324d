"""
Generation prompt: a draft on a topic written under a style Skill.
"""


def build_generate_prompt(skill_content: str, topic: str) -> str:
    """Build the ghostwriter prompt for one draft.

    Args:
        skill_content: Markdown of the Skill version used.
        topic: What the article is about.
    """
    return f"""You are a professional ghostwriter. Write strictly following the Writing Style Skill below.

## Writing Style Skill

{skill_content}

---

## Writing task

Following the style rules above, write an article on this topic:

**Topic:** {topic}

Requirements:
1. Follow the tone, persona and style principles defined in the Skill
2. Never use the words, sentence patterns or structures in its blocklists
3. Use the author's habitual terms and expressions
4. Keep the author's real voice; do not sound like an AI
5. Give the content depth and a point of view; do not stay on the surface

Output only the article body, with no extra explanation or metadata."""
