"""Organize prompts for grouping offers into a display template."""

from offerflow.pydantic_models.offers import Offer
from offerflow.prompts.offer_format import offers_to_json

TEMPLATE_INSTRUCTIONS: dict[str, str] = {
    "timeline": (
        "Organize offers chronologically or by relevance period.\n"
        'Return a "timeline" array with date/period labels.'
    ),
    "grid": (
        "Organize offers into logical categories for grid display.\n"
        'Return a "categories" array with thematic groupings.'
    ),
    "kanban": (
        'Organize offers into kanban-style columns (e.g. "Top Priority", "Consider", "Maybe").\n'
        'Return a "kanban" array with status columns.'
    ),
}

GROUPING_INSTRUCTIONS: dict[str, str] = {
    "category": "Group by thematic categories (type, sector, etc.)",
    "price": "Group by price ranges (e.g. Budget, Mid-range, Premium)",
    "location": "Group by geographical location or region",
    "score": "Group by score ranges (e.g. Excellent 90+, Good 70-89, Fair 50-69)",
}

_SCHEMAS: dict[str, tuple[str, str]] = {
    # template -> (bucket list key, bucket label key)
    "timeline": ("timeline", "date"),
    "grid": ("categories", "name"),
    "kanban": ("kanban", "status"),
}

ORGANIZE_SYSTEM_PROMPT = """You are a librarian specializing in data organization.

## Task

Organize the provided offers using the template and grouping strategy below.

TEMPLATE: {template}
{template_instruction}

GROUPING STRATEGY: {group_by}
{grouping_instruction}

## Rules

1. Every offer goes into exactly one group.
2. Refer to each offer by its original "id"; do not change ids.
3. Use meaningful, user-friendly group labels.

## Output Format

Return ONLY a valid JSON object. No summary text, no thinking tags.

{{
  "{bucket_key}": [
    {{
      "{label_key}": "group label",
      "offers": [ {{"id": "original id"}} ]
    }}
  ],
  "groupedBy": "{group_by}"
}}"""


def build_organize_system_prompt(template: str, group_by: str) -> str:
    bucket_key, label_key = _SCHEMAS[template]
    return ORGANIZE_SYSTEM_PROMPT.format(
        template=template,
        template_instruction=TEMPLATE_INSTRUCTIONS[template],
        group_by=group_by,
        grouping_instruction=GROUPING_INSTRUCTIONS[group_by],
        bucket_key=bucket_key,
        label_key=label_key,
    )


def build_organize_prompt(offers: list[Offer], template: str, group_by: str) -> str:
    """Build the user prompt for the organize stage."""
    return (
        f"Organize these {len(offers)} offers using the {template} template grouped by {group_by}: "
        f"{offers_to_json(offers, include_score=True)}"
    )
