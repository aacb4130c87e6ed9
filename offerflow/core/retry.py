"""Bounded exponential-backoff retry for a single async stage operation.

Policy:
- Attempts are numbered 1..max_attempts; success returns immediately.
- MissingCredential and ValidationFailed are terminal: re-raised at once.
- Anything else is retried after 2^(attempt-1) * base_delay seconds.
- When the last attempt fails, RetryExhausted wraps the final error.

Built on tenacity so the stop/wait/retry rules read as configuration.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from offerflow.core.config import RetryConfig
from offerflow.core.errors import RetryExhausted, TERMINAL_ERRORS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float = RetryConfig.BASE_DELAY_SECONDS) -> float:
    """Seconds to wait after a failed ``attempt`` (1-based) before the next one."""
    return base_delay * 2 ** (attempt - 1)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    context: str = "operation",
    base_delay: float = RetryConfig.BASE_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded, exponentially delayed retries.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total attempts allowed (>= 1).
        context: Label used in logs and in the RetryExhausted message.
        base_delay: Delay before the second attempt, in seconds.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        The operation's result.

    Raises:
        MissingCredential, ValidationFailed: Immediately, without retrying.
        RetryExhausted: After max_attempts retryable failures.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def _log_retry(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            f"{context} - attempt {state.attempt_number}/{max_attempts} failed: {error}. "
            f"Retrying in {delay:.1f}s"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        retry=retry_if_not_exception_type((*TERMINAL_ERRORS, asyncio.CancelledError)),
        before_sleep=_log_retry,
        sleep=sleep,
    )

    try:
        result = await retrying(operation)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        message = str(last_error) if last_error else "Unknown error"
        logger.error(f"{context} failed after {max_attempts} attempts: {message}")
        raise RetryExhausted(
            f"{context} failed after {max_attempts} attempts: {message}",
            context,
            last_error=last_error,
            attempts=max_attempts,
        ) from last_error

    attempts = retrying.statistics.get("attempt_number", 1)
    if attempts > 1:
        logger.info(f"{context} - succeeded on attempt {attempts}/{max_attempts}")
    return result
