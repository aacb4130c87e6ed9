"""Offer store collaborator.

The workflow only reads from it: a caller may reference a previously stored
batch by id instead of sending the offers again.
"""

import logging
from abc import ABC, abstractmethod

from offerflow.pydantic_models.offers import Offer

logger = logging.getLogger(__name__)


class OfferStore(ABC):
    @abstractmethod
    async def find_by_ids(self, ids: list[str]) -> list[Offer]:
        """Offers matching ``ids``, in the order requested. Unknown ids are skipped."""


class InMemoryOfferStore(OfferStore):
    """Dictionary-backed store keyed by offer id."""

    def __init__(self, offers: list[Offer] | None = None):
        self._offers: dict[str, Offer] = {}
        for offer in offers or []:
            self.save(offer)

    def save(self, offer: Offer) -> None:
        self._offers[offer.id] = offer

    async def find_by_ids(self, ids: list[str]) -> list[Offer]:
        found = [self._offers[i] for i in ids if i in self._offers]
        if len(found) < len(ids):
            logger.warning(f"Offer store: {len(ids) - len(found)} of {len(ids)} ids not found")
        return found

    def __len__(self) -> int:
        return len(self._offers)
