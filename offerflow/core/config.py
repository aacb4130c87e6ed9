"""Centralized configuration for the offer pipeline.

All magic numbers, defaults, and provider settings live here so stage runners
and the orchestrator never hard-code them. Each constant documents:
- What it controls
- Where it is used
"""

import os
from typing import Final


# =============================================================================
# LLM Provider Configuration
# =============================================================================
#
# Stage runners resolve a credential per call (see core/credentials.py), so the
# provider name here only selects which shared environment key to fall back on
# and which model prefix litellm should route to.
#
#   - "openrouter" (default): OpenRouter API gateway
#   - "openai", "anthropic", "google", "mistral": direct provider APIs
#
# =============================================================================

LLM_PROVIDER: Final[str] = os.environ.get("LLM_PROVIDER", "openrouter")
"""Provider used when the caller does not name one. Set via LLM_PROVIDER."""

PROVIDER_ENV_VARS: Final[dict[str, tuple[str, ...]]] = {
    "openrouter": ("OPENROUTER_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "gemini": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "mistral": ("MISTRAL_API_KEY",),
}
"""Environment variables holding the shared (operator) key for each provider.

Checked in order; the first non-empty value wins.
Used by: credentials.py:shared_key_from_env()
"""

SUPPORTED_PROVIDERS: Final[tuple[str, ...]] = (
    "openrouter", "openai", "anthropic", "google", "mistral",
)

DEFAULT_MODEL: Final[str] = os.environ.get(
    "OFFERFLOW_MODEL",
    "openrouter/google/gemini-2.5-flash-preview-09-2025",
)
"""Default litellm model identifier for every stage.

Override per run with WorkflowOptions.model or the --model CLI flag.
"""


# LLM Call Configuration

class LLMConfig:
    """Default parameters for LLM API calls."""

    TEMPERATURE: Final[float] = 0.2
    """Sampling temperature for all stage calls.

    Low but non-zero: ranking justifications read better with a little
    variation, while the JSON structure stays stable.
    """

    RESPONSE_FORMAT: Final[dict[str, str]] = {"type": "json_object"}
    """Response format requesting JSON output (json_mode=True)."""

    MAX_TOKENS: Final[int] = 8192
    """Upper bound on completion tokens for a single stage call."""


# Retry Configuration

class RetryConfig:
    """Configuration for stage-level retry behavior.

    Wait before attempt n+1 is BASE_DELAY_SECONDS * 2^(n-1): 1s, 2s, 4s...
    Terminal errors (missing credential, schema violation) never retry.
    """

    FETCH_ATTEMPTS: Final[int] = 3
    """Max attempts for the fetch stage."""

    ANALYZE_ATTEMPTS: Final[int] = 3
    """Max attempts for the analyze stage."""

    ORGANIZE_ATTEMPTS: Final[int] = 2
    """Max attempts for the organize stage. Organization is cosmetic, so it
    gives up sooner."""

    BASE_DELAY_SECONDS: Final[float] = 1.0
    """Delay before the second attempt; doubles on every further attempt."""


# Stage Defaults

class StageDefaults:
    """Default inputs for the three stage runners."""

    FETCH_BATCH_SIZE: Final[int] = 10
    """Number of offers the fetch stage asks the model for."""

    ANALYZE_LIMIT: Final[int] = 3
    """Max number of ranked offers returned by the analyze stage."""

    DESCRIPTION_PREVIEW_CHARS: Final[int] = 500
    """Offer descriptions are truncated to this length inside prompts.

    Full descriptions are restored by reconciliation, so truncation only
    saves tokens.
    """

    LARGE_BATCH_WARNING: Final[int] = 100
    """Analyzing this many offers or more in one call logs a warning."""

    CRITERIA_WEIGHTS: Final[dict[str, int]] = {
        "relevance": 50,
        "quality": 30,
        "trend": 20,
    }
    """Default weighting of the three score components (sums to 100)."""

    LANGUAGES: Final[tuple[str, ...]] = ("en", "fr", "es", "de")
    """Languages the analyze stage can write justifications in."""

    ORGANIZE_TEMPLATE: Final[str] = "grid"
    ORGANIZE_GROUP_BY: Final[str] = "category"


# Credential Rotation

class RotationConfig:
    """Credential hygiene settings."""

    MAX_KEY_AGE_DAYS: Final[int] = 90
    """Active credentials older than this are reported as needing rotation.
    Used by: credentials.py:InMemoryCredentialStore.keys_needing_rotation()
    """

    KEY_PREVIEW_CHARS: Final[int] = 4
    """Trailing characters of a key shown in logs and listings."""


# Cancellation

class CancellationConfig:
    """Lifetime of cancellation markers."""

    MARKER_TTL_SECONDS: Final[float] = 3600.0
    """Markers expire after this long, whether or not the workflow ever ran.
    Used by: cancellation.py:InMemoryCancellationRegistry
    """
