"""Tests for the fetch, analyze, and organize stage runners.

All model calls go through the scripted client from conftest.py, so these
tests exercise the full render -> credential -> retry -> extract ->
validate -> reconcile sequence without network access.
"""

import json
import logging

import pytest

from offerflow.agents.analyze_agent import AnalyzeInputs, analyze_offers, run_analyze_stage
from offerflow.agents.fetch_agent import (
    FetchInputs,
    run_fetch_stage,
    sort_by_source_priority,
    unwrap_offer_list,
)
from offerflow.agents.organize_agent import OrganizeInputs, organize_offers, run_organize_stage
from offerflow.core.credentials import CredentialResolver, InMemoryCredentialStore
from offerflow.pydantic_models import CriteriaWeights, KanbanOrganization, Offer


@pytest.fixture
def no_key_resolver():
    return CredentialResolver(InMemoryCredentialStore(shared_keys={}))


# =============================================================================
# Fetch
# =============================================================================


class TestFetchStage:

    @pytest.mark.asyncio
    async def test_web_offers_first_then_priority(self, make_context, fetch_reply):
        reply = fetch_reply([("a", "ai-generated", 90), ("b", "web", 10), ("c", "web", 70), ("d", "ai-generated", 20)])
        ctx, client = make_context([reply])

        result = await run_fetch_stage(FetchInputs(domain="Real Estate", context="Lyon"), ctx)

        assert result.success
        assert [o.id for o in result.data] == ["c", "b", "a", "d"]
        assert result.meta["total_offers"] == 4
        assert result.meta["web_sources"] == 2
        assert client.stages == ["fetch"]

    @pytest.mark.asyncio
    async def test_model_order_kept_without_web_preference(self, make_context, fetch_reply):
        reply = fetch_reply([("a", "ai-generated", 90), ("b", "web", 10)])
        ctx, client = make_context([reply])

        result = await run_fetch_stage(FetchInputs(domain="Jobs", prefer_web_sources=False), ctx)

        assert [o.id for o in result.data] == ["a", "b"]
        assert "Generate realistic listings." in client.calls[0]["system_prompt"]

    @pytest.mark.asyncio
    async def test_wrapped_array_and_duplicates(self, make_context, fetch_reply):
        reply = fetch_reply([("a", "web", 50), ("a", "web", 40), ("b", "web", 30)], wrap=True)
        ctx, _ = make_context([reply])

        result = await run_fetch_stage(FetchInputs(domain="Jobs"), ctx)

        assert [o.id for o in result.data] == ["a", "b"]
        assert result.data[0].priority == 50

    @pytest.mark.asyncio
    async def test_prompt_carries_request(self, make_context, fetch_reply):
        ctx, client = make_context([fetch_reply([("a", "web", 50)])])

        await run_fetch_stage(FetchInputs(domain="Vintage cars", context="Under 20k", batch_size=7), ctx)

        call = client.calls[0]
        assert "Vintage cars" in call["system_prompt"]
        assert "Find 7 live offers" in call["user_prompt"]
        assert "Under 20k" in call["user_prompt"]
        assert call["api_key"] == "sk-or-shared-1234"
        assert call["model"] == "openrouter/test/model"

    @pytest.mark.asyncio
    async def test_invalid_json_is_retried(self, make_context, fetch_reply, instant_sleep):
        ctx, client = make_context(["Sorry, I cannot browse today.", fetch_reply([("a", "web", 50)])])

        result = await run_fetch_stage(FetchInputs(domain="Jobs"), ctx)

        assert result.success
        assert len(client.calls) == 2
        assert instant_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_retry_exhausted(self, make_context, instant_sleep):
        ctx, client = make_context(["nothing", "still nothing", "no"])

        result = await run_fetch_stage(FetchInputs(domain="Jobs"), ctx)

        assert not result.success
        assert result.data is None
        assert result.error.code == "RETRY_EXHAUSTED"
        assert result.error.message.startswith("fetch offers failed after 3 attempts")
        assert len(client.calls) == 3
        assert instant_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_invalid_offers_not_retried(self, make_context):
        ctx, client = make_context(['[{"id": "1"}]'])

        result = await run_fetch_stage(FetchInputs(domain="Jobs"), ctx)

        assert result.error.code == "VALIDATION_FAILED"
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_credential(self, make_context, no_key_resolver):
        ctx, client = make_context([], resolver=no_key_resolver)

        result = await run_fetch_stage(FetchInputs(domain="Jobs"), ctx)

        assert result.error.code == "API_KEY_MISSING"
        assert result.error.message == "No API key configured for provider 'openrouter'"
        assert client.calls == []


class TestFetchHelpers:

    def test_unwrap_first_list(self):
        assert unwrap_offer_list({"count": 2, "results": [1, 2]}) == [1, 2]
        assert unwrap_offer_list([3]) == [3]
        assert unwrap_offer_list({"none": "here"}) == {"none": "here"}

    def test_sort_is_stable(self, sample_offers):
        ai_offers = [o for o in sample_offers if o.source == "ai-generated"]
        assert sort_by_source_priority(ai_offers) == ai_offers


# =============================================================================
# Analyze
# =============================================================================


class TestAnalyzeStage:

    @pytest.mark.asyncio
    async def test_limit_and_ranks(self, make_context, sample_offers, profile, scored_entry, analysis_reply):
        reply = analysis_reply([scored_entry("2", 1, 92), scored_entry("1", 2, 85), scored_entry("3", 3, 40)])
        ctx, _ = make_context([reply])

        result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile, limit=2), ctx)

        assert result.success
        assert [o.id for o in result.data.top_offers] == ["2", "1"]
        assert {o.rank for o in result.data.top_offers} == {1, 2}
        assert result.data.market_summary == "Tight market."
        assert result.data.search_sources == []
        assert result.meta["offers_analyzed"] == 3
        assert result.meta["reconciliation"]["reranked"] is True

    @pytest.mark.asyncio
    async def test_original_fields_restored(self, make_context, sample_offers, profile, scored_entry, analysis_reply):
        reply = analysis_reply([scored_entry("1", 1, title="HALLUCINATED", price=999, description="short")])
        ctx, client = make_context([reply])

        result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile), ctx)

        offer = result.data.top_offers[0]
        assert offer.title == "Sunny 3-room flat"
        assert offer.price == 450000
        assert offer.description == sample_offers[0].description
        # The prompt only ever saw a truncated description.
        assert sample_offers[0].description not in client.calls[0]["user_prompt"]

    @pytest.mark.asyncio
    async def test_weights_and_language_in_prompt(
        self, make_context, sample_offers, profile, scored_entry, analysis_reply
    ):
        ctx, client = make_context([analysis_reply([scored_entry("1", 1)])])
        inputs = AnalyzeInputs(
            offers=sample_offers,
            profile=profile,
            criteria_weights=CriteriaWeights(relevance=60, quality=25, trend=15),
            language="fr",
        )

        result = await run_analyze_stage(inputs, ctx)

        system_prompt = client.calls[0]["system_prompt"]
        assert "Relevance: 60%" in system_prompt
        assert "Trend: 15%" in system_prompt
        assert "Fournir l'analyse en français." in system_prompt
        assert "Family with 2 kids" in system_prompt
        assert "Use FR language" in client.calls[0]["user_prompt"]
        assert result.meta["language"] == "fr"
        assert result.meta["criteria_weights"] == {"relevance": 60, "quality": 25, "trend": 15}

    @pytest.mark.asyncio
    async def test_unsupported_language_falls_back(
        self, make_context, sample_offers, profile, scored_entry, analysis_reply, caplog
    ):
        ctx, client = make_context([analysis_reply([scored_entry("1", 1)])])

        with caplog.at_level(logging.WARNING):
            result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile, language="it"), ctx)

        assert result.meta["language"] == "en"
        assert "Provide analysis in English." in client.calls[0]["system_prompt"]
        assert "Unsupported analysis language 'it'" in caplog.text

    @pytest.mark.asyncio
    async def test_no_offers(self, make_context, profile):
        ctx, client = make_context([])

        result = await run_analyze_stage(AnalyzeInputs(offers=[], profile=profile), ctx)

        assert result.error.code == "NO_OFFERS"
        assert result.error.message == "No offers available for analysis"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_missing_field_not_retried(self, make_context, sample_offers, profile, scored_entry):
        ctx, client = make_context([json.dumps({"topOffers": [scored_entry("1", 1)]})])

        result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile), ctx)

        assert result.error.code == "VALIDATION_FAILED"
        assert "marketSummary" in result.error.message
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_reply_with_reasoning_and_fences(
        self, make_context, sample_offers, profile, scored_entry, analysis_reply
    ):
        reply = f"<think>rank them</think>Here you go:\n```json\n{analysis_reply([scored_entry('3', 1)])}\n```"
        ctx, _ = make_context([reply])

        result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile), ctx)

        assert result.success
        assert result.data.top_offers[0].id == "3"

    @pytest.mark.asyncio
    async def test_usage_recorded_for_stored_key(
        self, make_context, credential_store, sample_offers, profile, scored_entry, analysis_reply
    ):
        stored = credential_store.add_credential("user-1", "openrouter", "sk-stored-5678")
        ctx, client = make_context(["not json", analysis_reply([scored_entry("1", 1)])], user_id="user-1")

        result = await run_analyze_stage(AnalyzeInputs(offers=sample_offers, profile=profile), ctx)
        await ctx.resolver.drain()

        assert result.success
        assert client.calls[0]["api_key"] == "sk-stored-5678"
        records = credential_store.usage_for(stored.key_id)
        assert [r.success for r in records] == [True, True]
        assert all(r.action == "analyze" for r in records)
        assert records[0].tokens == 160

    @pytest.mark.asyncio
    async def test_rejects_zero_limit(self, make_context, sample_offers, profile):
        ctx, _ = make_context([])
        with pytest.raises(ValueError):
            await analyze_offers(AnalyzeInputs(offers=sample_offers, profile=profile, limit=0), ctx)


# =============================================================================
# Organize
# =============================================================================


class TestOrganizeStage:

    @pytest.mark.asyncio
    async def test_kanban_has_only_kanban_buckets(self, make_context, sample_offers, organize_reply):
        reply = organize_reply("kanban", {"Top Priority": ["1"], "Consider": ["2", "1"]}, group_by="score")
        ctx, _ = make_context([reply])

        result = await run_organize_stage(OrganizeInputs(offers=sample_offers, template="kanban", group_by="score"), ctx)

        assert result.success
        assert isinstance(result.data, KanbanOrganization)
        assert set(result.data.model_dump(by_alias=True)) == {"template", "kanban", "groupedBy"}
        ids = [o.id for column in result.data.kanban for o in column.offers]
        assert sorted(ids) == ["1", "2", "3"]
        assert result.data.kanban[-1].status == "Unsorted"
        assert result.meta["groups"] == 3
        assert result.meta["reconciliation"]["duplicates"] == 1

    @pytest.mark.asyncio
    async def test_scores_sent_to_model(self, make_context, sample_offers, organize_reply):
        ctx, client = make_context([organize_reply("grid", {"All": ["1", "2", "3"]})])

        await run_organize_stage(OrganizeInputs(offers=sample_offers, template="grid", group_by="price"), ctx)

        assert '"finalScore"' in client.calls[0]["user_prompt"]
        assert '"categories"' in client.calls[0]["system_prompt"]
        assert "Group by price ranges" in client.calls[0]["system_prompt"]

    @pytest.mark.asyncio
    async def test_wrong_shape_not_retried(self, make_context, sample_offers, organize_reply):
        ctx, client = make_context([organize_reply("grid", {"All": ["1"]})])

        result = await run_organize_stage(OrganizeInputs(offers=sample_offers, template="timeline"), ctx)

        assert result.error.code == "VALIDATION_FAILED"
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_two_attempts(self, make_context, sample_offers, instant_sleep):
        ctx, client = make_context(["{", "{"])

        result = await run_organize_stage(OrganizeInputs(offers=sample_offers), ctx)

        assert result.error.code == "RETRY_EXHAUSTED"
        assert len(client.calls) == 2
        assert instant_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_no_offers(self, make_context):
        ctx, client = make_context([])

        result = await run_organize_stage(OrganizeInputs(offers=[]), ctx)

        assert result.error.code == "NO_OFFERS"
        assert client.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("template, group_by", [("mosaic", "category"), ("grid", "color")])
    async def test_unknown_template_or_grouping(self, make_context, sample_offers, template, group_by):
        ctx, _ = make_context([])
        with pytest.raises(ValueError):
            await organize_offers(OrganizeInputs(offers=sample_offers, template=template, group_by=group_by), ctx)

    @pytest.mark.asyncio
    async def test_invented_offer_kept(self, make_context, sample_offers, organize_reply):
        invented = {
            "id": "x1", "title": "Extra", "description": "d",
            "price": 5, "location": "l", "category": "c",
        }
        ctx, _ = make_context([organize_reply("grid", {"All": ["1", "2", "3", invented]})])

        result = await run_organize_stage(OrganizeInputs(offers=sample_offers), ctx)

        offers = result.data.categories[0].offers
        assert [o.id for o in offers] == ["1", "2", "3", "x1"]
        assert isinstance(offers[3], Offer)
