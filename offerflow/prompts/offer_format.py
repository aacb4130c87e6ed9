"""Compact offer rendering shared by the analyze and organize prompts."""

import json

from offerflow.core.config import StageDefaults
from offerflow.pydantic_models.offers import Offer


def truncate_description(description: str, limit: int = StageDefaults.DESCRIPTION_PREVIEW_CHARS) -> str:
    """Cut long descriptions to ``limit`` chars; reconciliation restores the full text."""
    if len(description) <= limit:
        return description
    return description[:limit] + "..."


def simplify_offer(offer: Offer, include_score: bool = False) -> dict:
    """Fields the model needs to judge an offer, nothing more."""
    simplified = {
        "id": offer.id,
        "title": offer.title,
        "price": offer.price,
        "location": offer.location,
        "category": offer.category,
        "description": truncate_description(offer.description),
    }
    if include_score:
        simplified["finalScore"] = getattr(offer, "final_score", 0) or 0
    return simplified


def offers_to_json(offers: list[Offer], include_score: bool = False) -> str:
    return json.dumps([simplify_offer(o, include_score) for o in offers], ensure_ascii=False)
