"""
Prompt builders for draft generation, edit analysis and style extraction.
"""

from .analyze_style import build_analyze_style_prompt, style_json_to_markdown
from .diff_analyze import build_diff_analyze_prompt
from .generate import build_generate_prompt

__all__ = [
    "build_analyze_style_prompt",
    "build_diff_analyze_prompt",
    "build_generate_prompt",
    "style_json_to_markdown",
]
