"""Structural validation of extracted JSON against a stage's response shape.

Thin wrapper over pydantic's TypeAdapter that converts ValidationError into
ValidationFailed with a dotted path per offending field, so the message a
caller sees reads like ``topOffers.0.rank, marketSummary``.
"""

import logging
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from offerflow.core.errors import ValidationFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")


@lru_cache(maxsize=64)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


def error_paths(error: ValidationError) -> list[str]:
    """Dotted paths of every field reported by a pydantic ValidationError."""
    paths = []
    for item in error.errors():
        path = ".".join(str(part) for part in item["loc"]) or "<root>"
        if path not in paths:
            paths.append(path)
    return paths


def validate(value: Any, shape: type[T], context: str = "model response") -> T:
    """Validate ``value`` against ``shape`` and return the typed result.

    Args:
        value: Parsed JSON (output of extract_json).
        shape: A pydantic model class or any type pydantic understands,
            e.g. ``list[Offer]``.
        context: Label used in error messages.

    Returns:
        The validated, typed value.

    Raises:
        ValidationFailed: Listing the dotted path of every mismatching field.
    """
    try:
        return _adapter(shape).validate_python(value)
    except ValidationError as e:
        paths = error_paths(e)
        logger.warning(f"Schema validation failed for {context}: {len(paths)} field(s)")
        raise ValidationFailed(
            f"Validation failed for {context}: {', '.join(paths)}",
            context,
            paths=paths,
        ) from e
