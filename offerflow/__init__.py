"""AI Offer Ranking Pipeline.

Drives an unreliable language model through a bounded, observable,
cancellable Fetch -> Analyze -> Organize workflow over a set of offers and
a free-form user profile.

Architecture:
    core/             - JSON extraction, validation, retry, credentials, logging, errors
    prompts/          - Model prompt templates
    agents/           - Stage runners (fetch, analyze, organize)
    phases/           - Phase runner classes used by the orchestrator
    pydantic_models/  - Offers, organization variants, workflow records

Usage:
    from offerflow import WorkflowInputs, WorkflowOptions, UserProfile, run_workflow

    result = await run_workflow(
        "wf-1",
        WorkflowInputs(profile=UserProfile(domain="Jobs"), offers=offers),
        WorkflowOptions(analyze_limit=2),
    )

CLI:
    offerflow request.json --organize kanban
"""

from offerflow.orchestrator import WorkflowOrchestrator, cancel_workflow, run_workflow
from offerflow.agents import (
    AnalyzeInputs,
    FetchInputs,
    OrganizeInputs,
    StageContext,
    StageResult,
    run_analyze_stage,
    run_fetch_stage,
    run_organize_stage,
)
from offerflow.pydantic_models import (
    AnalysisResponse,
    CriteriaWeights,
    Offer,
    OrganizedOffers,
    ScoredOffer,
    UserProfile,
    WorkflowInputs,
    WorkflowOptions,
    WorkflowProgress,
    WorkflowResult,
    WorkflowState,
)

__all__ = [
    # Workflow entry points
    "WorkflowOrchestrator",
    "run_workflow",
    "cancel_workflow",
    # Stage entry points
    "StageContext",
    "StageResult",
    "FetchInputs",
    "AnalyzeInputs",
    "OrganizeInputs",
    "run_fetch_stage",
    "run_analyze_stage",
    "run_organize_stage",
    # Models
    "AnalysisResponse",
    "CriteriaWeights",
    "Offer",
    "OrganizedOffers",
    "ScoredOffer",
    "UserProfile",
    "WorkflowInputs",
    "WorkflowOptions",
    "WorkflowProgress",
    "WorkflowResult",
    "WorkflowState",
]
