"""Pydantic schemas for the organize stage.

The organize stage returns exactly one of three shapes depending on the
requested template, so the result is a tagged union keyed by ``template``
rather than one object with three optional bucket lists:

- timeline -> TimelineOrganization (``timeline``: dated buckets)
- grid     -> GridOrganization     (``categories``: named buckets)
- kanban   -> KanbanOrganization   (``kanban``: named columns)

The *Payload models describe what the model is asked to return; their bucket
entries are loose dicts because reconciliation replaces them with the
caller's original offers by id.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import Field, SerializeAsAny

from offerflow.pydantic_models.offers import CamelModel, Offer

Template = Literal["timeline", "grid", "kanban"]
GroupBy = Literal["category", "price", "location", "score"]


# Model-facing payloads

class TimelineBucketPayload(CamelModel):
    date: str
    offers: list[dict[str, Any]] = Field(default_factory=list)


class CategoryBucketPayload(CamelModel):
    name: str
    offers: list[dict[str, Any]] = Field(default_factory=list)


class KanbanColumnPayload(CamelModel):
    status: str
    offers: list[dict[str, Any]] = Field(default_factory=list)


class TimelinePayload(CamelModel):
    timeline: list[TimelineBucketPayload]
    grouped_by: str | None = None


class GridPayload(CamelModel):
    categories: list[CategoryBucketPayload]
    grouped_by: str | None = None


class KanbanPayload(CamelModel):
    kanban: list[KanbanColumnPayload]
    grouped_by: str | None = None


PAYLOAD_BY_TEMPLATE: dict[str, type[CamelModel]] = {
    "timeline": TimelinePayload,
    "grid": GridPayload,
    "kanban": KanbanPayload,
}
"""Response shape the validator checks for each template."""


# Reconciled results

class TimelineBucket(CamelModel):
    date: str
    offers: list[SerializeAsAny[Offer]] = Field(default_factory=list)


class CategoryBucket(CamelModel):
    name: str
    offers: list[SerializeAsAny[Offer]] = Field(default_factory=list)


class KanbanColumn(CamelModel):
    status: str
    offers: list[SerializeAsAny[Offer]] = Field(default_factory=list)


class TimelineOrganization(CamelModel):
    template: Literal["timeline"] = "timeline"
    timeline: list[TimelineBucket]
    grouped_by: str

    @property
    def buckets(self) -> list[TimelineBucket]:
        return self.timeline


class GridOrganization(CamelModel):
    template: Literal["grid"] = "grid"
    categories: list[CategoryBucket]
    grouped_by: str

    @property
    def buckets(self) -> list[CategoryBucket]:
        return self.categories


class KanbanOrganization(CamelModel):
    template: Literal["kanban"] = "kanban"
    kanban: list[KanbanColumn]
    grouped_by: str

    @property
    def buckets(self) -> list[KanbanColumn]:
        return self.kanban


OrganizedOffers = Annotated[
    Union[TimelineOrganization, GridOrganization, KanbanOrganization],
    Field(discriminator="template"),
]
"""Output of the organize stage: exactly the structure requested."""
