"""Analyze prompts for weighted offer ranking.

The analyze stage scores every offer against the user profile on three
weighted criteria and returns the top N with a justification each.
"""

import json

from offerflow.pydantic_models.offers import CriteriaWeights, Offer, UserProfile
from offerflow.prompts.offer_format import offers_to_json

LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "en": "Provide analysis in English.",
    "fr": "Fournir l'analyse en français.",
    "es": "Proporcionar el análisis en español.",
    "de": "Analyse auf Deutsch bereitstellen.",
}

ANALYZE_SYSTEM_PROMPT = """You are an expert market analyst.

## Task

Rank the provided offers and return the top {limit} for the user profile below.
{language_instruction}

## Weighted Scoring

Score every offer 0-100 on each criterion, then combine them with these weights:
- Relevance: {relevance}% (match to the user's needs)
- Quality: {quality}% (offer quality indicators)
- Trend: {trend}% (market trends and timing)

finalScore is the weighted average of the three scores.

## Output Format

Return ONLY a valid JSON object. No thinking tags.
Justifications and the market summary must be written in {language}.

{{
  "topOffers": [
    {{
      "id": "string (original id, unchanged)",
      "title": "string",
      "description": "string",
      "price": "string or number",
      "location": "string",
      "category": "string",
      "finalScore": <number 0-100>,
      "rank": <number 1 to {limit}>,
      "justification": "detailed explanation in {language}",
      "webInsights": ["market insight 1", "market insight 2"],
      "breakdown": {{
        "relevance": <number 0-100>,
        "quality": <number 0-100>,
        "trend": <number 0-100>
      }}
    }}
  ],
  "marketSummary": "2-3 sentence overview in {language}"
}}

USER PROFILE: {profile}
DOMAIN: {domain}
LIMIT: Top {limit} offers
LANGUAGE: {language}"""


def build_analyze_system_prompt(
    profile: UserProfile,
    limit: int,
    weights: CriteriaWeights,
    language: str,
) -> str:
    return ANALYZE_SYSTEM_PROMPT.format(
        limit=limit,
        language_instruction=LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"]),
        relevance=_pct(weights.relevance),
        quality=_pct(weights.quality),
        trend=_pct(weights.trend),
        language=language.upper(),
        profile=json.dumps(profile.model_dump(by_alias=True), ensure_ascii=False),
        domain=profile.domain,
    )


def build_analyze_prompt(offers: list[Offer], limit: int, language: str) -> str:
    """Build the user prompt for the analyze stage."""
    return (
        f"Analyze these {len(offers)} offers with the weighting above and rank the top {limit}. "
        f"Use {language.upper()} language: {offers_to_json(offers)}"
    )


def _pct(value: float) -> str:
    return f"{value:g}"
