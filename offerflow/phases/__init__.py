"""Phase runners for the offer workflow.

Each phase wraps one stage runner with:
- An enable rule derived from WorkflowOptions
- A progress message
- Logging and per-stage metadata
"""

from offerflow.phases.phase_base import (
    PhaseRunner,
    PhaseContext,
    WorkflowResources,
    WorkflowRunState,
)
from offerflow.phases.fetch_phase import FetchPhase
from offerflow.phases.analyze_phase import AnalyzePhase
from offerflow.phases.organize_phase import OrganizePhase

__all__ = [
    "PhaseRunner",
    "PhaseContext",
    "WorkflowResources",
    "WorkflowRunState",
    "FetchPhase",
    "AnalyzePhase",
    "OrganizePhase",
]
