"""Fetch agent: ask the model to discover offers in a market.

Output is an ordered list of offers tagged with their source ("web" or
"ai-generated") and a 0-100 reliability priority. With
``prefer_web_sources`` the list is re-ordered: web offers first, keeping
their relative order, then by descending priority.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from offerflow.agents.stage_base import StageContext, StageResult, call_model_json, elapsed_ms
from offerflow.core.config import RetryConfig, StageDefaults
from offerflow.core.errors import to_stage_error
from offerflow.core.reconciliation import index_by_id
from offerflow.core.retry import retry_with_backoff
from offerflow.core.schema_validator import validate
from offerflow.pydantic_models.offers import Offer
from offerflow.prompts.fetch_prompt import build_fetch_prompt, build_fetch_system_prompt

logger = logging.getLogger(__name__)

STAGE = "fetch"
CONTEXT = "fetch offers"


@dataclass
class FetchInputs:
    domain: str
    context: str = ""
    batch_size: int = StageDefaults.FETCH_BATCH_SIZE
    prefer_web_sources: bool = True


def unwrap_offer_list(value: Any) -> Any:
    """Accept ``{"offers": [...]}`` (or any object wrapping one array) as the array."""
    if isinstance(value, dict):
        for item in value.values():
            if isinstance(item, list):
                return item
    return value


def sort_by_source_priority(offers: list[Offer]) -> list[Offer]:
    """Web offers first, then descending priority; ties keep model order."""
    return sorted(offers, key=lambda o: (o.source != "web", -o.priority))


async def fetch_offers(inputs: FetchInputs, ctx: StageContext) -> list[Offer]:
    """Run the fetch stage, raising on failure.

    Raises:
        MissingCredential: No API key for the provider.
        ValidationFailed: The model's array does not contain valid offers.
        RetryExhausted: Every attempt failed with a retryable error.
    """
    system_prompt = build_fetch_system_prompt(
        inputs.domain, inputs.context, inputs.batch_size, inputs.prefer_web_sources,
    )
    user_prompt = build_fetch_prompt(inputs.domain, inputs.context, inputs.batch_size)
    credential = await ctx.resolver.require(ctx.provider, ctx.api_key, ctx.user_id, CONTEXT)

    async def attempt() -> list[Offer]:
        parsed = await call_model_json(ctx, credential, system_prompt, user_prompt, STAGE, "fetch response")
        offers = validate(unwrap_offer_list(parsed), list[Offer], "fetch response")

        unique = list(index_by_id(offers).values())
        if len(unique) < len(offers):
            logger.warning(f"Fetch: dropped {len(offers) - len(unique)} offers with duplicate ids")

        if inputs.prefer_web_sources:
            unique = sort_by_source_priority(unique)
        return unique

    offers = await retry_with_backoff(
        attempt,
        RetryConfig.FETCH_ATTEMPTS,
        CONTEXT,
        base_delay=ctx.base_delay,
        sleep=ctx.sleep,
    )
    web = sum(1 for o in offers if o.source == "web")
    logger.info(f"Fetch: retrieved {len(offers)} offers ({web} from web)")
    return offers


async def run_fetch_stage(inputs: FetchInputs, ctx: StageContext | None = None) -> StageResult[list[Offer]]:
    """Entry point: fetch offers and return a StageResult instead of raising."""
    ctx = ctx or StageContext.default()
    started = time.monotonic()
    try:
        offers = await fetch_offers(inputs, ctx)
    except Exception as e:
        logger.error(f"Fetch offers failed: {e}")
        return StageResult.fail(to_stage_error(e, CONTEXT), model=ctx.model, latency_ms=elapsed_ms(started))

    return StageResult.ok(
        offers,
        model=ctx.model,
        latency_ms=elapsed_ms(started),
        total_offers=len(offers),
        web_sources=sum(1 for o in offers if o.source == "web"),
    )
