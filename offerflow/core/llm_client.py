"""Model client for the stage runners.

Stage runners only need "send a system and a user prompt, get text back".
This module owns everything around that:
- Message building
- Per-call API key (credentials are resolved per stage, not per process)
- Cost tracking integration
- Turning empty replies and provider error payloads into typed errors

Parsing is deliberately left to core/json_extractor.py so the retry loop in
each stage sees extraction failures as ordinary retryable errors.

Retries are not done here. Each stage wraps the whole
call-extract-validate sequence in core/retry.py instead.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import litellm

from offerflow.core.config import LLMConfig
from offerflow.core.cost_tracker import CostTracker
from offerflow.core.errors import ApiError, NoResponse

logger = logging.getLogger(__name__)

# Suppress LiteLLM debug noise (done once at module load)
logging.getLogger("litellm").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.ERROR)


@dataclass
class LLMResponse:
    """Raw response from a model call.

    Attributes:
        raw_content: Text returned by the model (may contain prose around JSON).
        model: Model identifier used for the call.
    """

    raw_content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ModelClient(Protocol):
    """Anything that can complete a system/user prompt pair."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        api_key: str,
        json_mode: bool = True,
        stage: str = "",
    ) -> LLMResponse: ...


def detect_api_error(response: Any) -> str | None:
    """Return the provider's error message if ``response`` is an error payload.

    Gateways such as OpenRouter can answer HTTP 200 with ``{"error": {...}}``
    and no choices.
    """
    if isinstance(response, dict):
        error = response.get("error")
    else:
        error = getattr(response, "error", None)
    if isinstance(error, dict) and error:
        return str(error.get("message") or error)
    if isinstance(error, str) and error:
        return error
    return None


class LLMClient:
    """Default ModelClient backed by ``litellm.acompletion``.

    Usage:
        client = LLMClient(cost_tracker=tracker)
        response = await client.complete(
            system_prompt="You are a market analyst.",
            user_prompt="Rank these offers: ...",
            model="openrouter/google/gemini-2.5-flash",
            api_key=credential.key,
            stage="analyze",
        )
        text = response.raw_content
    """

    def __init__(self, cost_tracker: CostTracker | None = None) -> None:
        self.cost_tracker = cost_tracker

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        api_key: str,
        json_mode: bool = True,
        stage: str = "",
        temperature: float | None = None,
    ) -> LLMResponse:
        """Make one completion call.

        Raises:
            ApiError: The provider rejected the call or returned an error payload.
            NoResponse: The call succeeded but produced no text.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "api_key": api_key,
            "temperature": temperature if temperature is not None else LLMConfig.TEMPERATURE,
            "max_tokens": LLMConfig.MAX_TOKENS,
        }
        if json_mode:
            kwargs["response_format"] = LLMConfig.RESPONSE_FORMAT

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise ApiError(f"Model call failed: {e}", stage) from e

        error_message = detect_api_error(response)
        if error_message:
            raise ApiError(f"Provider returned an error: {error_message}", stage)

        usage = getattr(response, "usage", None)
        if self.cost_tracker:
            self.cost_tracker.record(model, usage, stage=stage)

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not isinstance(content, str) or not content.strip():
            raise NoResponse("No response text from model", stage)

        logger.debug(f"{stage or 'model'}: response received ({len(content)} chars) using {model}")
        return LLMResponse(
            raw_content=content,
            model=model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
