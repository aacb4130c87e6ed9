"""Recover a single JSON value from free-form model output.

Models asked for JSON still wrap it in code fences, prepend a sentence of
prose, append commentary, or emit a <think> section first. This module cuts
the outermost object or array out of that text and parses it. Fence markers
around the value fall outside the cut; text inside string values is kept
as-is.

It deliberately does not repair truncated or syntactically broken JSON. A
broken reply fails with InvalidJSON and the stage retries the model call.
"""

import json
import logging
import re
from typing import Any

from offerflow.core.errors import InvalidJSON

logger = logging.getLogger(__name__)

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}


def strip_reasoning(text: str) -> str:
    """Remove <think>...</think> sections emitted by reasoning models."""
    return _THINK_BLOCK.sub("", text).strip()


def extract_json(text: str, context: str = "model response") -> Any:
    """Extract and parse the outermost JSON object or array in ``text``.

    The value starts at the first ``{`` or ``[`` (whichever comes first) and
    ends at the last occurrence of the matching closing character.
    ``NaN``, ``Infinity`` and ``-Infinity`` are rejected as they are not JSON.

    Args:
        text: Raw model output.
        context: Label used in error messages (e.g. "analyze response").

    Returns:
        The parsed JSON value (dict or list).

    Raises:
        InvalidJSON: If no balanced value is found or it fails to parse.
    """
    if not isinstance(text, str):
        raise InvalidJSON(f"Expected text in {context}, got {type(text).__name__}", context)

    cleaned = strip_reasoning(text)
    logger.debug(f"Parsing JSON from {context} ({len(cleaned)} chars)")

    starts = [(cleaned.find(opener), opener) for opener in _CLOSERS]
    starts = [(index, opener) for index, opener in starts if index != -1]
    if not starts:
        raise InvalidJSON(f"No valid JSON object or array found in {context}", context, raw=text)

    start, opener = min(starts)
    end = cleaned.rfind(_CLOSERS[opener])
    if end == -1 or end <= start:
        raise InvalidJSON(f"Incomplete JSON structure found in {context}", context, raw=text)

    def reject_constant(name: str) -> Any:
        raise InvalidJSON(f"Failed to parse JSON from {context}: {name} is not valid JSON", context, raw=text)

    candidate = cleaned[start:end + 1]
    try:
        return json.loads(candidate, parse_constant=reject_constant)
    except json.JSONDecodeError as e:
        raise InvalidJSON(f"Failed to parse JSON from {context}: {e}", context, raw=text) from e
