"""Analyze phase - rank the current offers against the user profile."""

from offerflow.agents import AnalyzeInputs, analyze_offers
from offerflow.core.errors import NoOffersAvailable
from offerflow.phases.phase_base import PhaseRunner
from offerflow.pydantic_models import AnalysisResponse, WorkflowState


class AnalyzePhase(PhaseRunner[AnalysisResponse]):
    """Stage 2: weighted ranking of the offers.

    Reads the fetched or caller-supplied offers, writes ``analysis``.
    """

    name = "Analyze"
    state = WorkflowState.ANALYZING

    def enabled(self) -> bool:
        return self.context.options.enable_analyze

    def start_message(self) -> str:
        return f"Analyzing {len(self.context.offers or [])} offers..."

    async def run(self) -> AnalysisResponse:
        offers = self.context.offers
        if not offers:
            raise NoOffersAvailable("No offers available for analysis", "analyze offers")

        options = self.context.options
        self.start(len(offers))

        analysis, report = await analyze_offers(
            AnalyzeInputs(
                offers=offers,
                profile=self.context.inputs.profile,
                limit=options.analyze_limit,
                criteria_weights=options.criteria_weights,
                language=options.language,
            ),
            self.context.stage_context,
        )
        self.context.analysis = analysis

        if not report.clean:
            self.log("Model output needed reconciliation", "warning", **report.summary())
        self.end(
            f"Top {len(analysis.top_offers)} offers ranked",
            offers_analyzed=len(offers),
            language=options.language,
        )
        return analysis
