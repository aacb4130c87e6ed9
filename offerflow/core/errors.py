"""Structured error types for the offer pipeline.

Provides:
- An exception taxonomy for everything that can go wrong while driving a
  language model through a stage (missing key, empty reply, broken JSON,
  schema violation, exhausted retries, cancellation)
- A serializable StageError record that entry points return instead of
  raising, so callers can render the message without knowing the taxonomy
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Stable machine-readable codes for pipeline errors."""
    API_KEY_MISSING = "API_KEY_MISSING"       # No credential resolvable for the provider
    NO_RESPONSE = "NO_RESPONSE"               # Model returned empty text
    INVALID_JSON = "INVALID_JSON"             # No parseable JSON in the model output
    VALIDATION_FAILED = "VALIDATION_FAILED"   # JSON parsed but has the wrong shape
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"       # All attempts failed
    API_ERROR = "API_ERROR"                   # Provider returned an error payload
    TIMEOUT = "TIMEOUT"                       # Stage exceeded its time budget
    NO_OFFERS = "NO_OFFERS"                   # Nothing to analyze or organize
    CANCELLED = "CANCELLED"                   # Workflow cancelled at a stage boundary
    UNKNOWN = "UNKNOWN"                       # Unclassified errors


class AgentError(Exception):
    """Base class for every error raised by a stage runner."""

    code: ErrorCode = ErrorCode.UNKNOWN
    retryable: bool = True

    def __init__(self, message: str, context: str = ""):
        super().__init__(message)
        self.message = message
        self.context = context


class MissingCredential(AgentError):
    """No API key could be resolved for the provider. Never retried."""
    code = ErrorCode.API_KEY_MISSING
    retryable = False


class NoResponse(AgentError):
    """The model call succeeded but returned no text."""
    code = ErrorCode.NO_RESPONSE


class InvalidJSON(AgentError):
    """No balanced, parseable JSON value could be recovered from the output."""
    code = ErrorCode.INVALID_JSON

    def __init__(self, message: str, context: str = "", raw: str | None = None):
        super().__init__(message, context)
        self.raw = raw


class ValidationFailed(AgentError):
    """Parsed JSON does not match the expected shape. Never retried.

    Attributes:
        paths: Dotted paths of every mismatching field (e.g. "topOffers.0.rank").
    """
    code = ErrorCode.VALIDATION_FAILED
    retryable = False

    def __init__(self, message: str, context: str = "", paths: list[str] | None = None):
        super().__init__(message, context)
        self.paths = paths or []


class ApiError(AgentError):
    """The provider answered with an error payload instead of a completion."""
    code = ErrorCode.API_ERROR


class RetryExhausted(AgentError):
    """Every attempt failed with a retryable error.

    Attributes:
        last_error: The exception raised by the final attempt.
        attempts: Number of attempts made.
    """
    code = ErrorCode.RETRY_EXHAUSTED

    def __init__(self, message: str, context: str = "", last_error: BaseException | None = None, attempts: int = 0):
        super().__init__(message, context)
        self.last_error = last_error
        self.attempts = attempts


class StageTimeout(AgentError):
    """A stage ran longer than the configured per-stage timeout."""
    code = ErrorCode.TIMEOUT


class NoOffersAvailable(AgentError):
    """Analysis or organization was requested with an empty offer set."""
    code = ErrorCode.NO_OFFERS
    retryable = False


class WorkflowCancelled(AgentError):
    """Cancellation was observed at a stage boundary."""
    code = ErrorCode.CANCELLED
    retryable = False

    def __init__(self, workflow_id: str):
        super().__init__("Workflow was cancelled", context=workflow_id)
        self.workflow_id = workflow_id


TERMINAL_ERRORS: tuple[type[AgentError], ...] = (ValidationFailed, MissingCredential)
"""Errors the retry executor must re-raise immediately."""


@dataclass
class StageError:
    """Serializable error record returned by entry points."""

    code: str
    message: str
    context: str = ""
    raw: str | None = None

    def __str__(self) -> str:
        parts = [f"{self.code}: {self.message}"]
        if self.context:
            parts.append(f"context={self.context}")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "raw": self.raw,
        }


def to_stage_error(error: BaseException, context: str = "") -> StageError:
    """Convert any exception into a StageError, keeping its message verbatim."""
    if isinstance(error, AgentError):
        raw = getattr(error, "raw", None)
        return StageError(
            code=error.code.value,
            message=error.message,
            context=error.context or context,
            raw=raw[:500] if raw else None,
        )
    return StageError(
        code=ErrorCode.UNKNOWN.value,
        message=str(error) or type(error).__name__,
        context=context,
    )
