"""Core utilities for the offer pipeline."""

from offerflow.core.config import (
    LLM_PROVIDER,
    PROVIDER_ENV_VARS,
    SUPPORTED_PROVIDERS,
    DEFAULT_MODEL,
    LLMConfig,
    RetryConfig,
    StageDefaults,
    RotationConfig,
)
from offerflow.core.errors import (
    ErrorCode,
    AgentError,
    MissingCredential,
    NoResponse,
    InvalidJSON,
    ValidationFailed,
    ApiError,
    RetryExhausted,
    StageTimeout,
    NoOffersAvailable,
    WorkflowCancelled,
    TERMINAL_ERRORS,
    StageError,
    to_stage_error,
)
from offerflow.core.json_extractor import extract_json, strip_reasoning
from offerflow.core.schema_validator import validate
from offerflow.core.retry import retry_with_backoff, backoff_delay
from offerflow.core.credentials import (
    CredentialResolution,
    CredentialResolver,
    CredentialStore,
    InMemoryCredentialStore,
    StoredCredential,
    UsageRecord,
    RotationResult,
    mask_key,
)
from offerflow.core.cancellation import (
    CancellationRegistry,
    InMemoryCancellationRegistry,
    get_cancellation_registry,
    set_cancellation_registry,
    reset_cancellation_registry,
)
from offerflow.core.cost_tracker import CostTracker, CallUsage
from offerflow.core.llm_client import LLMClient, LLMResponse, ModelClient
from offerflow.core.offer_store import OfferStore, InMemoryOfferStore
from offerflow.core.pipeline_logger import PipelineLogger, get_logger, reset_logger

__all__ = [
    # Configuration
    "LLM_PROVIDER",
    "PROVIDER_ENV_VARS",
    "SUPPORTED_PROVIDERS",
    "DEFAULT_MODEL",
    "LLMConfig",
    "RetryConfig",
    "StageDefaults",
    "RotationConfig",
    # Errors
    "ErrorCode",
    "AgentError",
    "MissingCredential",
    "NoResponse",
    "InvalidJSON",
    "ValidationFailed",
    "ApiError",
    "RetryExhausted",
    "StageTimeout",
    "NoOffersAvailable",
    "WorkflowCancelled",
    "TERMINAL_ERRORS",
    "StageError",
    "to_stage_error",
    # Extraction, validation, retry
    "extract_json",
    "strip_reasoning",
    "validate",
    "retry_with_backoff",
    "backoff_delay",
    # Credentials
    "CredentialResolution",
    "CredentialResolver",
    "CredentialStore",
    "InMemoryCredentialStore",
    "StoredCredential",
    "UsageRecord",
    "RotationResult",
    "mask_key",
    # Cancellation
    "CancellationRegistry",
    "InMemoryCancellationRegistry",
    "get_cancellation_registry",
    "set_cancellation_registry",
    "reset_cancellation_registry",
    # Model calls and cost tracking
    "CostTracker",
    "CallUsage",
    "LLMClient",
    "LLMResponse",
    "ModelClient",
    # Offer store
    "OfferStore",
    "InMemoryOfferStore",
    # Logging
    "PipelineLogger",
    "get_logger",
    "reset_logger",
]
