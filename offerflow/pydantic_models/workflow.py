"""Pydantic schemas for the workflow orchestrator.

Defines the state machine vocabulary, the append-only progress log, the
caller-facing options, and the terminal WorkflowResult.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import Field, SerializeAsAny, model_validator

from offerflow.core.config import DEFAULT_MODEL, LLM_PROVIDER, StageDefaults
from offerflow.pydantic_models.offers import (
    AnalysisResponse,
    CamelModel,
    CriteriaWeights,
    Offer,
    UserProfile,
)
from offerflow.pydantic_models.organization import GroupBy, OrganizedOffers, Template


class WorkflowState(str, Enum):
    """Linear states; FAILED and CANCELLED are reachable from any stage."""

    PENDING = "pending"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    ORGANIZING = "organizing"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.COMPLETE, WorkflowState.FAILED, WorkflowState.CANCELLED)


class WorkflowProgress(CamelModel):
    """One entry in the workflow's append-only progress log."""

    state: WorkflowState
    current_step: int
    total_steps: int
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WorkflowInputs(CamelModel):
    """What the caller wants analysed.

    Attributes:
        domain: Market to search when fetching (defaults to profile.domain).
        context: Free-text search context for the fetch stage.
        offers: Caller-supplied offers. When given, fetching is off by default.
        offer_ids: Ids of previously stored offers, loaded from the offer
            store when ``offers`` is not given.
    """

    profile: UserProfile
    domain: str = ""
    context: str = ""
    offers: list[SerializeAsAny[Offer]] | None = None
    offer_ids: list[str] | None = None

    @model_validator(mode="after")
    def default_domain(self) -> "WorkflowInputs":
        if not self.domain:
            self.domain = self.profile.domain
        return self


class WorkflowOptions(CamelModel):
    """Per-run switches for the orchestrator.

    enable_fetch defaults to "fetch only if the caller supplied no offers".
    stage_timeout (seconds) bounds each stage; None means no bound and a hung
    model call blocks the workflow until the client's own timeout fires.
    """

    enable_fetch: bool | None = None
    enable_analyze: bool = True
    enable_organize: bool = False
    model: str = DEFAULT_MODEL
    provider: str = LLM_PROVIDER
    language: str = "en"
    criteria_weights: CriteriaWeights = Field(default_factory=CriteriaWeights)
    analyze_limit: int = Field(default=StageDefaults.ANALYZE_LIMIT, ge=1)
    batch_size: int = Field(default=StageDefaults.FETCH_BATCH_SIZE, ge=1)
    prefer_web_sources: bool = True
    organization_template: Template = "grid"
    group_by: GroupBy = "category"
    stage_timeout: float | None = Field(default=None, gt=0)


class WorkflowData(CamelModel):
    """Stage outputs collected by a workflow run."""

    offers: list[SerializeAsAny[Offer]] | None = None
    analysis: AnalysisResponse | None = None
    organization: OrganizedOffers | None = None
    stages: dict[str, dict[str, Any]] = Field(default_factory=dict)
    """Per-stage run details keyed by stage name (model, counts, settings)."""


class WorkflowResult(CamelModel):
    """Terminal record of one orchestrator invocation.

    Attributes:
        duration: Wall-clock run time in milliseconds.
    """

    success: bool
    state: WorkflowState
    progress: list[WorkflowProgress] = Field(default_factory=list)
    data: WorkflowData | None = None
    error: str | None = None
    duration: int = 0
