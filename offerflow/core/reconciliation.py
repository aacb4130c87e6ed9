"""Reconciliation - the caller's records win over whatever the model echoed.

Language models paraphrase, truncate, or invent the offer fields they are
asked to repeat back. Every stage that returns offers therefore looks each one
up by id among the caller's originals and rebuilds it from the original,
keeping only the fields the model is actually responsible for (scores, rank,
justification, bucket membership).

Rules:
1. Known id: base fields come from the original, model-derived fields from
   the model.
2. Unknown id (model invented it): passed through as the model returned it.
3. Ranking: ordered by model rank, truncated to the limit, renumbered 1..N,
   scores clamped into [0, 100].
4. Organization: an offer appears in at most one bucket (first wins); input
   offers the model dropped are collected into a trailing bucket.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from offerflow.pydantic_models.offers import (
    SCORED_FIELDS,
    Offer,
    ScoreBreakdown,
    ScoredOffer,
    normalize_offer_id,
)
from offerflow.pydantic_models.organization import (
    CategoryBucket,
    GridOrganization,
    KanbanColumn,
    KanbanOrganization,
    TimelineBucket,
    TimelineOrganization,
)

logger = logging.getLogger(__name__)

LEFTOVER_LABELS: dict[str, str] = {
    "timeline": "Undated",
    "grid": "Other",
    "kanban": "Unsorted",
}
"""Label of the trailing bucket that collects offers the model left out."""


@dataclass
class ReconciliationReport:
    """Audit of what reconciliation changed in a model response."""

    overwritten: list[str] = field(default_factory=list)     # ids rebuilt from originals
    passed_through: list[str] = field(default_factory=list)  # ids the model invented
    duplicates: list[str] = field(default_factory=list)      # ids seen twice, later copy dropped
    dropped: int = 0                                         # entries that were not valid offers
    recovered: list[str] = field(default_factory=list)       # originals the model left out
    reranked: bool = False                                   # ranks or scores were normalized

    @property
    def clean(self) -> bool:
        return not (self.passed_through or self.duplicates or self.dropped or self.recovered or self.reranked)

    def summary(self) -> dict[str, Any]:
        return {
            "overwritten": len(self.overwritten),
            "passed_through": len(self.passed_through),
            "duplicates": len(self.duplicates),
            "dropped": self.dropped,
            "recovered": len(self.recovered),
            "reranked": self.reranked,
        }


def index_by_id(offers: list[Offer]) -> dict[str, Offer]:
    """Map id -> offer; the first offer wins when a batch repeats an id."""
    index: dict[str, Offer] = {}
    for offer in offers:
        index.setdefault(offer.id, offer)
    return index


def _base_fields(offer: Offer) -> dict[str, Any]:
    """Offer-level fields only, even when ``offer`` is already a ScoredOffer."""
    return {name: getattr(offer, name) for name in Offer.model_fields}


def merge_scored_offer(scored: ScoredOffer, original: Offer) -> ScoredOffer:
    """Rebuild ``scored`` from ``original``, keeping only model-derived fields."""
    data = _base_fields(original)
    data.update({name: getattr(scored, name) for name in SCORED_FIELDS})
    return ScoredOffer.model_validate(data)


def _clamp(score: float) -> float:
    return min(100.0, max(0.0, float(score)))


def normalize_ranking(scored: list[ScoredOffer], limit: int) -> tuple[list[ScoredOffer], bool]:
    """Order by model rank, keep ``limit`` entries, renumber 1..N, clamp scores.

    Returns:
        (normalized offers, whether anything had to change)
    """
    ordered = sorted(scored, key=lambda s: s.rank)
    kept = ordered[:limit]
    changed = ordered != scored or len(kept) != len(scored)

    normalized = []
    for position, offer in enumerate(kept, start=1):
        breakdown = ScoreBreakdown(
            relevance=_clamp(offer.breakdown.relevance),
            quality=_clamp(offer.breakdown.quality),
            trend=_clamp(offer.breakdown.trend),
        )
        final_score = _clamp(offer.final_score)
        if offer.rank != position or final_score != offer.final_score or breakdown != offer.breakdown:
            changed = True
        normalized.append(offer.model_copy(update={
            "rank": position,
            "final_score": final_score,
            "breakdown": breakdown,
        }))
    return normalized, changed


def reconcile_scored_offers(
    scored: list[ScoredOffer],
    originals: list[Offer],
    limit: int,
) -> tuple[list[ScoredOffer], ReconciliationReport]:
    """Reconcile the analyze stage's ranked offers against the caller's batch."""
    report = ReconciliationReport()
    index = index_by_id(originals)

    merged = []
    for offer in scored:
        original = index.get(offer.id)
        if original is None:
            report.passed_through.append(offer.id)
            merged.append(offer)
        else:
            report.overwritten.append(offer.id)
            merged.append(merge_scored_offer(offer, original))

    normalized, report.reranked = normalize_ranking(merged, limit)
    return normalized, report


def _offer_from_model(item: dict[str, Any]) -> Offer | None:
    """Best-effort typed view of an entry the model invented."""
    for model in (ScoredOffer, Offer):
        try:
            return model.model_validate(item)
        except ValidationError:
            continue
    return None


def reconcile_bucket(
    items: list[dict[str, Any]],
    index: dict[str, Offer],
    seen: set[str],
    report: ReconciliationReport,
) -> list[Offer]:
    """Replace a bucket's entries with the originals they refer to."""
    offers: list[Offer] = []
    for item in items:
        raw_id = normalize_offer_id(item.get("id")) if isinstance(item, dict) else None
        offer_id = str(raw_id) if raw_id is not None else None

        if offer_id is not None and offer_id in seen:
            report.duplicates.append(offer_id)
            continue

        original = index.get(offer_id) if offer_id is not None else None
        if original is not None:
            offers.append(original)
        else:
            invented = _offer_from_model(item) if isinstance(item, dict) else None
            if invented is None:
                report.dropped += 1
                continue
            report.passed_through.append(invented.id)
            offers.append(invented)

        if offer_id is not None:
            seen.add(offer_id)
            if original is not None:
                report.overwritten.append(offer_id)
    return offers


def reconcile_organization(
    payload: Any,
    template: str,
    originals: list[Offer],
    group_by: str,
) -> tuple[TimelineOrganization | GridOrganization | KanbanOrganization, ReconciliationReport]:
    """Rebuild an organize-stage payload into the requested organization variant.

    Args:
        payload: Validated TimelinePayload, GridPayload or KanbanPayload.
        template: "timeline", "grid" or "kanban".
        originals: The offers that were sent to the model.
        group_by: Partition criterion requested by the caller.
    """
    if template not in LEFTOVER_LABELS:
        raise ValueError(f"Unknown organization template: {template}")

    report = ReconciliationReport()
    index = index_by_id(originals)
    seen: set[str] = set()

    def missing() -> list[Offer]:
        leftovers = [offer for offer_id, offer in index.items() if offer_id not in seen]
        report.recovered.extend(offer.id for offer in leftovers)
        return leftovers

    leftover_label = LEFTOVER_LABELS[template]

    if template == "timeline":
        buckets = [
            TimelineBucket(date=b.date, offers=reconcile_bucket(b.offers, index, seen, report))
            for b in payload.timeline
        ]
        leftovers = missing()
        if leftovers:
            buckets.append(TimelineBucket(date=leftover_label, offers=leftovers))
        return TimelineOrganization(timeline=buckets, grouped_by=group_by), report

    if template == "kanban":
        columns = [
            KanbanColumn(status=c.status, offers=reconcile_bucket(c.offers, index, seen, report))
            for c in payload.kanban
        ]
        leftovers = missing()
        if leftovers:
            columns.append(KanbanColumn(status=leftover_label, offers=leftovers))
        return KanbanOrganization(kanban=columns, grouped_by=group_by), report

    categories = [
        CategoryBucket(name=c.name, offers=reconcile_bucket(c.offers, index, seen, report))
        for c in payload.categories
    ]
    leftovers = missing()
    if leftovers:
        categories.append(CategoryBucket(name=leftover_label, offers=leftovers))
    return GridOrganization(categories=categories, grouped_by=group_by), report
