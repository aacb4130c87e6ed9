"""Shared plumbing for the three stage runners.

Every stage follows the same sequence:

    render prompt -> resolve credential -> retry(model call -> extract -> validate -> reconcile)

StageContext carries the collaborators a stage needs (model client,
credential resolver, retry sleep) so tests can swap any of them. StageResult
is what the ``run_*_stage`` entry points return: they never raise past their
own boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from offerflow.core.config import DEFAULT_MODEL, LLM_PROVIDER, RetryConfig
from offerflow.core.cost_tracker import CostTracker
from offerflow.core.credentials import CredentialResolution, CredentialResolver, UsageRecord
from offerflow.core.errors import AgentError, StageError
from offerflow.core.json_extractor import extract_json
from offerflow.core.llm_client import LLMClient, ModelClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StageContext:
    """Collaborators and per-run settings shared by every stage call.

    Attributes:
        client: Model client (LLMClient in production, a scripted fake in tests).
        resolver: Picks the API key for each stage call.
        api_key: Transient caller-supplied key; wins over stored and shared keys.
        user_id: Authenticated user whose stored key may be used.
        sleep: Awaitable sleep used between retry attempts.
    """

    client: ModelClient
    resolver: CredentialResolver
    model: str = DEFAULT_MODEL
    provider: str = LLM_PROVIDER
    user_id: str | None = None
    api_key: str | None = None
    cost_tracker: CostTracker | None = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    base_delay: float = RetryConfig.BASE_DELAY_SECONDS

    @classmethod
    def default(cls, **overrides: Any) -> StageContext:
        """Production context: litellm client, env-backed resolver, fresh cost tracker."""
        cost_tracker = overrides.pop("cost_tracker", None) or CostTracker()
        client = overrides.pop("client", None) or LLMClient(cost_tracker=cost_tracker)
        resolver = overrides.pop("resolver", None) or CredentialResolver()
        return cls(client=client, resolver=resolver, cost_tracker=cost_tracker, **overrides)


@dataclass
class StageResult(Generic[T]):
    """Discriminated success/failure result of a stage entry point."""

    success: bool
    data: T | None = None
    error: StageError | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T, **meta: Any) -> StageResult[T]:
        return cls(success=True, data=data, meta=meta)

    @classmethod
    def fail(cls, error: StageError, **meta: Any) -> StageResult[T]:
        return cls(success=False, error=error, meta=meta)


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def call_model_json(
    ctx: StageContext,
    credential: CredentialResolution,
    system_prompt: str,
    user_prompt: str,
    stage: str,
    context: str,
) -> Any:
    """One attempt: call the model, audit the key's usage, extract JSON.

    Usage is recorded in the background for stored credentials whether the
    call succeeds or fails.
    """
    started = time.monotonic()
    try:
        response = await ctx.client.complete(
            system_prompt,
            user_prompt,
            model=ctx.model,
            api_key=credential.key,
            json_mode=True,
            stage=stage,
        )
    except Exception as e:
        message = e.message if isinstance(e, AgentError) else str(e)
        ctx.resolver.record_usage_detached(credential, UsageRecord(
            success=False,
            latency_ms=elapsed_ms(started),
            model=ctx.model,
            action=stage,
            error_message=message,
        ))
        raise

    ctx.resolver.record_usage_detached(credential, UsageRecord(
        success=True,
        latency_ms=elapsed_ms(started),
        tokens=response.total_tokens,
        model=ctx.model,
        action=stage,
    ))
    logger.debug(f"{context}: {len(response.raw_content)} chars from {ctx.model}")
    return extract_json(response.raw_content, context)
