"""Organize agent: group offers into a timeline, grid, or kanban board.

The model only chooses bucket labels and which ids go where. Bucket entries
are replaced with the caller's original offers, every input offer ends up
in exactly one bucket, and the result is exactly the variant that was
requested.
"""

import logging
import time
from dataclasses import dataclass
from typing import get_args

from offerflow.agents.stage_base import StageContext, StageResult, call_model_json, elapsed_ms
from offerflow.core.config import RetryConfig
from offerflow.core.errors import NoOffersAvailable, to_stage_error
from offerflow.core.reconciliation import ReconciliationReport, reconcile_organization
from offerflow.core.retry import retry_with_backoff
from offerflow.core.schema_validator import validate
from offerflow.pydantic_models.offers import Offer
from offerflow.pydantic_models.organization import (
    PAYLOAD_BY_TEMPLATE,
    GridOrganization,
    GroupBy,
    KanbanOrganization,
    Template,
    TimelineOrganization,
)
from offerflow.prompts.organize_prompt import build_organize_prompt, build_organize_system_prompt

logger = logging.getLogger(__name__)

STAGE = "organize"
CONTEXT = "organize offers"

Organization = TimelineOrganization | GridOrganization | KanbanOrganization


@dataclass
class OrganizeInputs:
    offers: list[Offer]
    template: Template = "grid"
    group_by: GroupBy = "category"


async def organize_offers(
    inputs: OrganizeInputs,
    ctx: StageContext,
) -> tuple[Organization, ReconciliationReport]:
    """Run the organize stage, raising on failure.

    Raises:
        ValueError: Unknown template or grouping.
        NoOffersAvailable: ``inputs.offers`` is empty.
        MissingCredential: No API key for the provider.
        ValidationFailed: The model's answer does not match the template's shape.
        RetryExhausted: Every attempt failed with a retryable error.
    """
    if inputs.template not in get_args(Template):
        raise ValueError(f"Unknown organization template: {inputs.template}")
    if inputs.group_by not in get_args(GroupBy):
        raise ValueError(f"Unknown grouping: {inputs.group_by}")
    if not inputs.offers:
        raise NoOffersAvailable("No offers available for organization", CONTEXT)

    system_prompt = build_organize_system_prompt(inputs.template, inputs.group_by)
    user_prompt = build_organize_prompt(inputs.offers, inputs.template, inputs.group_by)
    payload_shape = PAYLOAD_BY_TEMPLATE[inputs.template]
    credential = await ctx.resolver.require(ctx.provider, ctx.api_key, ctx.user_id, CONTEXT)

    async def attempt() -> tuple[Organization, ReconciliationReport]:
        parsed = await call_model_json(ctx, credential, system_prompt, user_prompt, STAGE, "organize response")
        payload = validate(parsed, payload_shape, "organize response")

        organization, report = reconcile_organization(payload, inputs.template, inputs.offers, inputs.group_by)
        if report.duplicates:
            logger.warning(f"Organize: offers placed in several groups kept their first group: {report.duplicates}")
        if report.recovered:
            logger.warning(f"Organize: {len(report.recovered)} offers left out by the model were regrouped")
        return organization, report

    organization, report = await retry_with_backoff(
        attempt,
        RetryConfig.ORGANIZE_ATTEMPTS,
        CONTEXT,
        base_delay=ctx.base_delay,
        sleep=ctx.sleep,
    )
    logger.info(f"Organize: {len(organization.buckets)} groups using the {inputs.template} template")
    return organization, report


async def run_organize_stage(
    inputs: OrganizeInputs,
    ctx: StageContext | None = None,
) -> StageResult[Organization]:
    """Entry point: organize offers and return a StageResult instead of raising."""
    ctx = ctx or StageContext.default()
    started = time.monotonic()
    try:
        organization, report = await organize_offers(inputs, ctx)
    except Exception as e:
        logger.error(f"Organize offers failed: {e}")
        return StageResult.fail(to_stage_error(e, CONTEXT), model=ctx.model, latency_ms=elapsed_ms(started))

    return StageResult.ok(
        organization,
        model=ctx.model,
        latency_ms=elapsed_ms(started),
        template=inputs.template,
        group_by=inputs.group_by,
        groups=len(organization.buckets),
        reconciliation=report.summary(),
    )
