"""Stage runners for the offer pipeline.

Each stage makes fresh model calls with its own prompt, retry budget and
reconciliation; no conversation state is shared between stages.
"""

from offerflow.agents.stage_base import StageContext, StageResult
from offerflow.agents.fetch_agent import (
    FetchInputs,
    fetch_offers,
    run_fetch_stage,
    sort_by_source_priority,
    unwrap_offer_list,
)
from offerflow.agents.analyze_agent import AnalyzeInputs, analyze_offers, run_analyze_stage
from offerflow.agents.organize_agent import OrganizeInputs, organize_offers, run_organize_stage

__all__ = [
    # Shared
    "StageContext",
    "StageResult",
    # Fetch
    "FetchInputs",
    "fetch_offers",
    "run_fetch_stage",
    "sort_by_source_priority",
    "unwrap_offer_list",
    # Analyze
    "AnalyzeInputs",
    "analyze_offers",
    "run_analyze_stage",
    # Organize
    "OrganizeInputs",
    "organize_offers",
    "run_organize_stage",
]
