"""Prompt templates for the stage runners.

Each module contains the system prompt and user prompt builders for one
stage. Wording is free to change; the JSON shapes are what the stages
validate against.
"""

from offerflow.prompts.fetch_prompt import FETCH_SYSTEM_PROMPT, build_fetch_system_prompt, build_fetch_prompt
from offerflow.prompts.analyze_prompt import (
    ANALYZE_SYSTEM_PROMPT,
    LANGUAGE_INSTRUCTIONS,
    build_analyze_system_prompt,
    build_analyze_prompt,
)
from offerflow.prompts.organize_prompt import (
    ORGANIZE_SYSTEM_PROMPT,
    TEMPLATE_INSTRUCTIONS,
    GROUPING_INSTRUCTIONS,
    build_organize_system_prompt,
    build_organize_prompt,
)
from offerflow.prompts.offer_format import simplify_offer, truncate_description

__all__ = [
    # Fetch
    "FETCH_SYSTEM_PROMPT",
    "build_fetch_system_prompt",
    "build_fetch_prompt",
    # Analyze
    "ANALYZE_SYSTEM_PROMPT",
    "LANGUAGE_INSTRUCTIONS",
    "build_analyze_system_prompt",
    "build_analyze_prompt",
    # Organize
    "ORGANIZE_SYSTEM_PROMPT",
    "TEMPLATE_INSTRUCTIONS",
    "GROUPING_INSTRUCTIONS",
    "build_organize_system_prompt",
    "build_organize_prompt",
    # Shared
    "simplify_offer",
    "truncate_description",
]
