"""Base classes for workflow phases.

The context is split into three parts so responsibilities are clear:
- **WorkflowResources** (frozen): collaborators created once per run -
  stage context (model client, credential resolver), logger, cost tracker.
- **WorkflowInputs / WorkflowOptions** (pydantic, caller-owned): what to
  analyse and which stages to run. Never modified mid-run.
- **WorkflowRunState** (mutable): the data that accumulates as each phase
  runs - offers, analysis, organization, per-stage metadata.

PhaseContext wraps them and exposes convenience properties so phases can
write ``ctx.offers`` instead of ``ctx.state.offers``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from offerflow.agents.stage_base import StageContext
from offerflow.core.cost_tracker import CostTracker
from offerflow.core.pipeline_logger import PipelineLogger
from offerflow.pydantic_models import (
    AnalysisResponse,
    Offer,
    OrganizedOffers,
    WorkflowInputs,
    WorkflowOptions,
    WorkflowState,
)


@dataclass(frozen=True)
class WorkflowResources:
    """Shared collaborators - created once per run, never modified."""

    stage_context: StageContext
    logger: PipelineLogger
    cost_tracker: CostTracker


@dataclass
class WorkflowRunState:
    """Mutable state that accumulates during a run.

    - offers: caller-supplied or loaded up front, replaced by Fetch
    - analysis: written by Analyze, read by Organize
    - organization: written by Organize
    - stage_meta: one entry per completed stage (model, latency, counts)
    """

    offers: list[Offer] | None = None
    analysis: AnalysisResponse | None = None
    organization: OrganizedOffers | None = None
    stage_meta: dict[str, dict[str, Any]] = field(default_factory=dict)


class PhaseContext:
    """What phases receive: resources, caller settings, and run state."""

    def __init__(
        self,
        resources: WorkflowResources,
        inputs: WorkflowInputs,
        options: WorkflowOptions,
        state: WorkflowRunState,
    ):
        self.resources = resources
        self.inputs = inputs
        self.options = options
        self.state = state

    # -- Resource properties (read-only) --

    @property
    def stage_context(self) -> StageContext:
        return self.resources.stage_context

    @property
    def logger(self) -> PipelineLogger:
        return self.resources.logger

    @property
    def cost_tracker(self) -> CostTracker:
        return self.resources.cost_tracker

    # -- State properties (read-write) --

    @property
    def offers(self) -> list[Offer] | None:
        return self.state.offers

    @offers.setter
    def offers(self, value: list[Offer] | None) -> None:
        self.state.offers = value

    @property
    def analysis(self) -> AnalysisResponse | None:
        return self.state.analysis

    @analysis.setter
    def analysis(self, value: AnalysisResponse | None) -> None:
        self.state.analysis = value

    @property
    def organization(self) -> OrganizedOffers | None:
        return self.state.organization

    @organization.setter
    def organization(self, value: OrganizedOffers | None) -> None:
        self.state.organization = value


T = TypeVar("T")


class PhaseRunner(ABC, Generic[T]):
    """Base class for workflow phase runners.

    Each phase:
    - Has a name for logging and the WorkflowState it reports while running
    - Decides from the options whether it is enabled
    - Describes itself in one progress message
    - Raises on failure; the orchestrator turns errors into a failed result
    """

    name: str = "unnamed"
    state: WorkflowState = WorkflowState.PENDING

    def __init__(self, context: PhaseContext):
        self.context = context
        self.logger = context.logger

    @abstractmethod
    def enabled(self) -> bool:
        """Whether this phase runs for the current options."""

    @abstractmethod
    def start_message(self) -> str:
        """Progress message appended when the phase starts."""

    @abstractmethod
    async def run(self) -> T:
        """Execute the phase."""

    def log(self, message: str, level: str = "info", **data):
        """Log a message with phase context."""
        self.logger.log(level, f"[{self.name}] {message}", **data)

    def start(self, total: int = 0):
        self.logger.start_stage(self.name, total, self.context.stage_context.model)

    def end(self, result: str, **metrics):
        self.context.state.stage_meta[self.name.lower()] = {"model": self.context.stage_context.model, **metrics}
        self.logger.stage_result(self.name, result, **metrics)
