"""Pydantic models for stage inputs, model responses, and workflow records.

- offers:       Offer, UserProfile, ScoredOffer, AnalysisResponse...
- organization: template-keyed organize results (tagged union)
- workflow:     state machine, progress log, options, WorkflowResult
"""

from offerflow.pydantic_models.offers import (
    SCORED_FIELDS,
    AnalysisPayload,
    AnalysisResponse,
    CriteriaWeights,
    Offer,
    ScoreBreakdown,
    ScoredOffer,
    SearchSource,
    UserProfile,
    normalize_offer_id,
)
from offerflow.pydantic_models.organization import (
    PAYLOAD_BY_TEMPLATE,
    CategoryBucket,
    GridOrganization,
    GroupBy,
    KanbanColumn,
    KanbanOrganization,
    OrganizedOffers,
    Template,
    TimelineBucket,
    TimelineOrganization,
)
from offerflow.pydantic_models.workflow import (
    WorkflowData,
    WorkflowInputs,
    WorkflowOptions,
    WorkflowProgress,
    WorkflowResult,
    WorkflowState,
)

__all__ = [
    # Offers
    "SCORED_FIELDS",
    "AnalysisPayload",
    "AnalysisResponse",
    "CriteriaWeights",
    "Offer",
    "ScoreBreakdown",
    "ScoredOffer",
    "SearchSource",
    "UserProfile",
    "normalize_offer_id",
    # Organization
    "PAYLOAD_BY_TEMPLATE",
    "CategoryBucket",
    "GridOrganization",
    "GroupBy",
    "KanbanColumn",
    "KanbanOrganization",
    "OrganizedOffers",
    "Template",
    "TimelineBucket",
    "TimelineOrganization",
    # Workflow
    "WorkflowData",
    "WorkflowInputs",
    "WorkflowOptions",
    "WorkflowProgress",
    "WorkflowResult",
    "WorkflowState",
]
