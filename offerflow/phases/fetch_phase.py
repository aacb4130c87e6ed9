"""Fetch phase - discover offers when the caller supplied none."""

from offerflow.agents import FetchInputs, fetch_offers
from offerflow.phases.phase_base import PhaseRunner
from offerflow.pydantic_models import Offer, WorkflowState


class FetchPhase(PhaseRunner[list[Offer]]):
    """Stage 1 (optional): AI offer discovery.

    Enabled by default only when the caller supplied no offers.
    """

    name = "Fetch"
    state = WorkflowState.FETCHING

    def enabled(self) -> bool:
        if self.context.options.enable_fetch is not None:
            return self.context.options.enable_fetch
        inputs = self.context.inputs
        return inputs.offers is None and inputs.offer_ids is None

    def start_message(self) -> str:
        return f"Fetching offers from {self.context.inputs.domain}..."

    async def run(self) -> list[Offer]:
        options = self.context.options
        self.start(options.batch_size)

        offers = await fetch_offers(
            FetchInputs(
                domain=self.context.inputs.domain,
                context=self.context.inputs.context,
                batch_size=options.batch_size,
                prefer_web_sources=options.prefer_web_sources,
            ),
            self.context.stage_context,
        )
        self.context.offers = offers

        web = sum(1 for o in offers if o.source == "web")
        self.end(f"Fetched {len(offers)} offers", offers=len(offers), web_sources=web)
        return offers
