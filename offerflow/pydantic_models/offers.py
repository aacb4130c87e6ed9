"""Pydantic schemas for offers, user profiles, and ranked analysis results.

Models that cross the language-model boundary accept and emit the camelCase
keys the prompts ask for (``finalScore``, ``topOffers``...) while exposing
snake_case attributes to Python code.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


OfferSource = Literal["web", "ai-generated"]


def normalize_offer_id(value: Any) -> Any:
    """Render numeric ids as text (7 and 7.0 both become "7")."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


class Offer(CamelModel):
    """A listing, job, property or product under consideration.

    Attributes:
        id: Identity within one request batch (not globally unique).
        price: Free-form price; models return both "450 000 EUR" and 450000.
        source: Where the offer came from; set by the fetch stage.
        priority: Reliability score 0-100 assigned by the fetch stage.
    """

    id: str
    title: str
    description: str
    price: str | int | float
    location: str
    category: str
    url: str = ""
    source: OfferSource = "ai-generated"
    priority: float = Field(default=0, description="0-100, higher = more reliable/recent")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Models often return numeric ids; identity is compared as text."""
        return normalize_offer_id(v)

    @field_validator("url", mode="before")
    @classmethod
    def none_url_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class UserProfile(CamelModel):
    """Free-text description of what the user is looking for."""

    domain: str = Field(min_length=1, description='e.g. "Real Estate", "Jobs"')
    explicit_criteria: str = Field(default="", description='Hard filters, e.g. "Budget 800k, Paris"')
    implicit_context: str = Field(default="", description='Soft preferences, e.g. "Family with 2 kids"')


class CriteriaWeights(CamelModel):
    """Relative weight (percent) of each score component."""

    relevance: float = 50
    quality: float = 30
    trend: float = 20


class ScoreBreakdown(CamelModel):
    """Per-component scores, each 0-100."""

    relevance: float
    quality: float
    trend: float


class ScoredOffer(Offer):
    """An offer with the model-derived ranking fields attached."""

    final_score: float = Field(description="0-100, weighted average of the breakdown")
    rank: int = Field(description="1 = best; unique and contiguous after reconciliation")
    justification: str
    web_insights: list[str] = Field(default_factory=list)
    breakdown: ScoreBreakdown


SCORED_FIELDS: tuple[str, ...] = ("final_score", "rank", "justification", "web_insights", "breakdown")
"""Fields reconciliation keeps from the model's answer."""


class SearchSource(CamelModel):
    """A web source cited by the analysis."""

    title: str
    uri: str


class AnalysisPayload(CamelModel):
    """Shape the analyze stage expects from the model."""

    top_offers: list[ScoredOffer]
    market_summary: str


class AnalysisResponse(CamelModel):
    """Reconciled output of the analyze stage."""

    top_offers: list[ScoredOffer] = Field(default_factory=list)
    market_summary: str = ""
    search_sources: list[SearchSource] = Field(default_factory=list)
