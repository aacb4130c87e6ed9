"""Tests for offerflow.prompts package."""

import json

import pytest

from offerflow.prompts import (
    build_analyze_system_prompt,
    build_fetch_system_prompt,
    build_organize_system_prompt,
    simplify_offer,
    truncate_description,
)
from offerflow.prompts.offer_format import offers_to_json
from offerflow.pydantic_models import CriteriaWeights, ScoredOffer


class TestOfferFormat:

    def test_short_description_untouched(self):
        assert truncate_description("short") == "short"

    def test_long_description_truncated(self):
        text = "x" * 501
        assert truncate_description(text) == "x" * 500 + "..."

    def test_simplify_drops_source_fields(self, sample_offers):
        simplified = simplify_offer(sample_offers[0])
        assert set(simplified) == {"id", "title", "price", "location", "category", "description"}
        assert simplified["description"].endswith("...")

    def test_scores_included_on_request(self, sample_offers, scored_entry):
        scored = ScoredOffer.model_validate(scored_entry("1", 1, score=77))
        assert simplify_offer(scored, include_score=True)["finalScore"] == 77
        assert simplify_offer(sample_offers[1], include_score=True)["finalScore"] == 0

    def test_offers_to_json_keeps_unicode(self, sample_offers):
        offer = sample_offers[0].model_copy(update={"location": "Paris 15ᵉ, Île-de-France"})
        rendered = offers_to_json([offer])
        assert "Île-de-France" in rendered
        assert json.loads(rendered)[0]["id"] == "1"


class TestSystemPrompts:

    def test_fetch_prompt_is_fully_formatted(self):
        prompt = build_fetch_system_prompt("Jobs", "Remote", 12, True)
        assert "BATCH SIZE: 12" in prompt
        assert "PREFER real web sources" in prompt
        assert "{" in prompt and "{domain}" not in prompt

    def test_analyze_prompt_weights(self, profile):
        prompt = build_analyze_system_prompt(profile, 5, CriteriaWeights(relevance=33.5, quality=33.5, trend=33), "de")
        assert "Relevance: 33.5%" in prompt
        assert "Analyse auf Deutsch bereitstellen." in prompt
        assert "LIMIT: Top 5 offers" in prompt

    @pytest.mark.parametrize("template, key, label", [
        ("timeline", '"timeline"', '"date"'),
        ("grid", '"categories"', '"name"'),
        ("kanban", '"kanban"', '"status"'),
    ])
    def test_organize_prompt_shape(self, template, key, label):
        prompt = build_organize_system_prompt(template, "score")
        assert key in prompt
        assert label in prompt
        assert "Excellent 90+" in prompt
