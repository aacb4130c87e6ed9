"""Fetch prompts for offer discovery.

The fetch stage asks the model for a batch of current offers in a market,
tagged with where each one came from and how reliable it looks.
"""

FETCH_SYSTEM_PROMPT = """You are a retrieval agent specializing in market data.

## Goal

Find real-world current offers (jobs, products, real estate, etc.) for the
domain and context you are given.

## Process

1. Reason about the best sources for the domain in the given context.
2. {source_instruction}
3. Retrieve at least {batch_size} listings.
4. Every listing must include title, price, location, category and URL (if available).

## Source Tagging

- "source": "web" when the listing comes from a real page with a valid URL,
  "ai-generated" otherwise
- "priority": 0-100, higher = more reliable and more recent
- Prefer recent, actively listed offers

## Output Format

Return ONLY a valid JSON array. No introductory text, no summary, no thinking tags.

[
  {{
    "id": "unique_string",
    "title": "string",
    "description": "key details",
    "price": "string or number",
    "location": "string",
    "category": "string",
    "url": "full source URL (empty string if not available)",
    "source": "web" | "ai-generated",
    "priority": <number 0-100>
  }}
]

DOMAIN: {domain}
CONTEXT: {context}
BATCH SIZE: {batch_size}"""

_PREFER_WEB = "PREFER real web sources with valid URLs over generated data."
_GENERATE = "Generate realistic listings."


def build_fetch_system_prompt(domain: str, context: str, batch_size: int, prefer_web_sources: bool) -> str:
    return FETCH_SYSTEM_PROMPT.format(
        domain=domain,
        context=context,
        batch_size=batch_size,
        source_instruction=_PREFER_WEB if prefer_web_sources else _GENERATE,
    )


def build_fetch_prompt(domain: str, context: str, batch_size: int) -> str:
    """Build the user prompt for the fetch stage."""
    return (
        f'Find {batch_size} live offers for domain "{domain}" with context: "{context}". '
        f"Return them as a JSON array with source tagging."
    )
