"""Analyze agent: rank offers against a user profile.

The model scores every offer on relevance, quality and trend (weighted by
the caller's criteria weights) and returns the top ``limit`` with a
justification each. The model only decides the scores, rank and
justification. Every other field of a returned offer is rebuilt from the
caller's original with the same id (see core/reconciliation.py).
"""

import logging
import time
from dataclasses import dataclass, field

from offerflow.agents.stage_base import StageContext, StageResult, call_model_json, elapsed_ms
from offerflow.core.config import RetryConfig, StageDefaults
from offerflow.core.errors import NoOffersAvailable, to_stage_error
from offerflow.core.reconciliation import ReconciliationReport, reconcile_scored_offers
from offerflow.core.retry import retry_with_backoff
from offerflow.core.schema_validator import validate
from offerflow.pydantic_models.offers import (
    AnalysisPayload,
    AnalysisResponse,
    CriteriaWeights,
    Offer,
    UserProfile,
)
from offerflow.prompts.analyze_prompt import build_analyze_prompt, build_analyze_system_prompt

logger = logging.getLogger(__name__)

STAGE = "analyze"
CONTEXT = "analyze offers"


@dataclass
class AnalyzeInputs:
    offers: list[Offer]
    profile: UserProfile
    limit: int = StageDefaults.ANALYZE_LIMIT
    criteria_weights: CriteriaWeights = field(default_factory=CriteriaWeights)
    language: str = "en"


def resolve_language(language: str) -> str:
    if language in StageDefaults.LANGUAGES:
        return language
    logger.warning(f"Unsupported analysis language '{language}', using 'en'")
    return "en"


async def analyze_offers(
    inputs: AnalyzeInputs,
    ctx: StageContext,
) -> tuple[AnalysisResponse, ReconciliationReport]:
    """Run the analyze stage, raising on failure.

    Returns:
        (reconciled analysis, report of what reconciliation changed)

    Raises:
        NoOffersAvailable: ``inputs.offers`` is empty.
        MissingCredential: No API key for the provider.
        ValidationFailed: The model's answer does not match AnalysisPayload.
        RetryExhausted: Every attempt failed with a retryable error.
    """
    if not inputs.offers:
        raise NoOffersAvailable("No offers available for analysis", CONTEXT)
    if inputs.limit < 1:
        raise ValueError("limit must be >= 1")

    if len(inputs.offers) >= StageDefaults.LARGE_BATCH_WARNING:
        logger.warning(f"Analyzing {len(inputs.offers)} offers in a single call; consider smaller batches")

    language = resolve_language(inputs.language)
    system_prompt = build_analyze_system_prompt(inputs.profile, inputs.limit, inputs.criteria_weights, language)
    user_prompt = build_analyze_prompt(inputs.offers, inputs.limit, language)
    credential = await ctx.resolver.require(ctx.provider, ctx.api_key, ctx.user_id, CONTEXT)

    async def attempt() -> tuple[AnalysisResponse, ReconciliationReport]:
        parsed = await call_model_json(ctx, credential, system_prompt, user_prompt, STAGE, "analyze response")
        payload = validate(parsed, AnalysisPayload, "analyze response")

        top_offers, report = reconcile_scored_offers(payload.top_offers, inputs.offers, inputs.limit)
        if report.passed_through:
            logger.warning(f"Analyze: model returned unknown offer ids {report.passed_through}")
        if report.reranked:
            logger.warning("Analyze: ranks or scores were normalized")

        return AnalysisResponse(
            top_offers=top_offers,
            market_summary=payload.market_summary,
            search_sources=[],
        ), report

    analysis, report = await retry_with_backoff(
        attempt,
        RetryConfig.ANALYZE_ATTEMPTS,
        CONTEXT,
        base_delay=ctx.base_delay,
        sleep=ctx.sleep,
    )
    logger.info(f"Analyze: ranked top {len(analysis.top_offers)} of {len(inputs.offers)} offers in {language}")
    return analysis, report


async def run_analyze_stage(
    inputs: AnalyzeInputs,
    ctx: StageContext | None = None,
) -> StageResult[AnalysisResponse]:
    """Entry point: analyze offers and return a StageResult instead of raising."""
    ctx = ctx or StageContext.default()
    started = time.monotonic()
    try:
        analysis, report = await analyze_offers(inputs, ctx)
    except Exception as e:
        logger.error(f"Analyze offers failed: {e}")
        return StageResult.fail(to_stage_error(e, CONTEXT), model=ctx.model, latency_ms=elapsed_ms(started))

    return StageResult.ok(
        analysis,
        model=ctx.model,
        latency_ms=elapsed_ms(started),
        language=resolve_language(inputs.language),
        criteria_weights=inputs.criteria_weights.model_dump(),
        offers_analyzed=len(inputs.offers),
        reconciliation=report.summary(),
    )
