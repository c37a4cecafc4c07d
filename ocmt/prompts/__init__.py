"""Prompt Construction Package"""

from ocmt.prompts.builder import PromptBuilder, Prompt, PromptContext, Commit
from ocmt.prompts.defaults import DEFAULT_GUIDELINES

__all__ = [
    "PromptBuilder",
    "Prompt",
    "PromptContext",
    "Commit",
    "DEFAULT_GUIDELINES",
]
