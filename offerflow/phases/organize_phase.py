"""Organize phase - group the results for display."""

from offerflow.agents import OrganizeInputs, organize_offers
from offerflow.core.errors import NoOffersAvailable
from offerflow.phases.phase_base import PhaseRunner
from offerflow.pydantic_models import Offer, OrganizedOffers, WorkflowState


class OrganizePhase(PhaseRunner[OrganizedOffers]):
    """Stage 3 (optional): template-based grouping.

    Organizes the analysed top offers when Analyze ran and returned some,
    otherwise every current offer.
    """

    name = "Organize"
    state = WorkflowState.ORGANIZING

    def enabled(self) -> bool:
        return self.context.options.enable_organize

    def start_message(self) -> str:
        return "Organizing results..."

    def offers_to_organize(self) -> list[Offer]:
        analysis = self.context.analysis
        if analysis is not None and analysis.top_offers:
            return list(analysis.top_offers)
        return list(self.context.offers or [])

    async def run(self) -> OrganizedOffers:
        offers = self.offers_to_organize()
        if not offers:
            raise NoOffersAvailable("No offers available for organization", "organize offers")

        options = self.context.options
        self.start(len(offers))

        organization, report = await organize_offers(
            OrganizeInputs(
                offers=offers,
                template=options.organization_template,
                group_by=options.group_by,
            ),
            self.context.stage_context,
        )
        self.context.organization = organization

        if not report.clean:
            self.log("Model output needed reconciliation", "warning", **report.summary())
        self.end(
            f"Organized into {len(organization.buckets)} groups",
            template=options.organization_template,
            group_by=options.group_by,
        )
        return organization
