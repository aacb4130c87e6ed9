"""Per-stage token and cost accounting for one workflow run.

The orchestrator gives each run a fresh CostTracker and the LLMClient records
every answered model call into it, tagged with the stage that made it.
Retried attempts count as separate calls. Each call is priced once, when it
is recorded, so the totals are plain sums.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import litellm

logger = logging.getLogger(__name__)

# USD per 1M tokens as (input, output), for models litellm cannot price.
_FALLBACK_PRICING: dict[str, tuple[float, float]] = {
    "google/gemini-2.5-flash": (0.30, 2.50),
    "google/gemini-2.5-pro": (1.25, 10.00),
    "openai/gpt-4o": (2.50, 10.00),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "anthropic/claude-3.5-sonnet": (3.00, 15.00),
    "anthropic/claude-3-haiku": (0.25, 1.25),
    "mistralai/mistral-large": (2.00, 6.00),
}

_unpriced_models: set[str] = set()


def price_call(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost of one call; 0.0 (with a one-time warning) when the model is unknown."""
    routed = model.removeprefix("openrouter/")
    try:
        prompt_cost, completion_cost = litellm.cost_per_token(
            model=routed,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        return prompt_cost + completion_cost
    except Exception:
        pass

    if routed in _FALLBACK_PRICING:
        input_rate, output_rate = _FALLBACK_PRICING[routed]
        return (prompt_tokens * input_rate + completion_tokens * output_rate) / 1_000_000

    if model not in _unpriced_models:
        _unpriced_models.add(model)
        logger.warning(f"No pricing for model '{model}'; its calls are counted at $0")
    return 0.0


@dataclass(frozen=True)
class CallUsage:
    """One answered model call."""

    stage: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class StageTotals:
    """Running sums for one stage (or for the whole run)."""

    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0

    def add(self, call: CallUsage) -> None:
        self.calls += 1
        self.prompt_tokens += call.prompt_tokens
        self.completion_tokens += call.completion_tokens
        self.cost_usd += call.cost_usd

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "cost_usd": round(self.cost_usd, 6),
        }


@dataclass
class CostTracker:
    """Model usage of one workflow run, broken down by stage."""

    calls: list[CallUsage] = field(default_factory=list)
    stages: dict[str, StageTotals] = field(default_factory=dict)
    totals: StageTotals = field(default_factory=StageTotals)

    def record(self, model: str, usage: Any, stage: str = "") -> CallUsage | None:
        """Price and store the usage block of a litellm response.

        Returns None (nothing recorded) when the provider sent no usage.
        """
        if usage is None:
            return None

        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        call = CallUsage(
            stage=stage or "unknown",
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost_usd=price_call(model, prompt_tokens, completion_tokens),
        )
        self.calls.append(call)
        self.stages.setdefault(call.stage, StageTotals()).add(call)
        self.totals.add(call)
        return call

    def to_dict(self) -> dict[str, Any]:
        """Run totals plus one entry per stage, in the order stages first called."""
        return {
            **self.totals.to_dict(),
            "stages": {name: totals.to_dict() for name, totals in self.stages.items()},
        }
