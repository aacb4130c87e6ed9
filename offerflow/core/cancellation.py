"""Cooperative cancellation markers for running workflows.

A caller cancels a workflow by id; the orchestrator checks the marker at
every stage boundary. In-flight model calls are never interrupted, only the
next stage is skipped.

The default registry keeps expiring markers in memory under a lock, which
is only correct for a single-process deployment. Multi-process deployments must
install a registry backed by a shared keyed store with TTL via
``set_cancellation_registry()``.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

from offerflow.core.config import CancellationConfig

logger = logging.getLogger(__name__)


class CancellationRegistry(ABC):
    """Mark, check, and clear opaque workflow ids."""

    @abstractmethod
    def mark_cancelled(self, workflow_id: str) -> None:
        """Record that ``workflow_id`` should stop at its next stage boundary."""

    @abstractmethod
    def is_cancelled(self, workflow_id: str) -> bool:
        """Whether a cancellation marker exists for ``workflow_id``."""

    @abstractmethod
    def clear(self, workflow_id: str) -> None:
        """Remove the marker (no-op if absent)."""


class InMemoryCancellationRegistry(CancellationRegistry):
    """Process-local registry; safe for concurrent use from threads and tasks.

    Each marker expires ``ttl`` seconds after it was set, so ids cancelled
    after their workflow finished (or that never ran) do not accumulate.
    """

    def __init__(
        self,
        ttl: float = CancellationConfig.MARKER_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._expires: dict[str, float] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [wid for wid, deadline in self._expires.items() if deadline <= now]
        for wid in expired:
            del self._expires[wid]

    def mark_cancelled(self, workflow_id: str) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._expires[workflow_id] = now + self.ttl
        logger.info(f"Cancellation requested for workflow {workflow_id}")

    def is_cancelled(self, workflow_id: str) -> bool:
        with self._lock:
            deadline = self._expires.get(workflow_id)
            if deadline is None:
                return False
            if deadline <= self._clock():
                del self._expires[workflow_id]
                return False
            return True

    def clear(self, workflow_id: str) -> None:
        with self._lock:
            self._expires.pop(workflow_id, None)

    def marked_ids(self) -> set[str]:
        """Ids with a live marker."""
        with self._lock:
            self._prune(self._clock())
            return set(self._expires)


# Global registry instance
_registry: CancellationRegistry | None = None


def get_cancellation_registry() -> CancellationRegistry:
    """Get or create the process-wide cancellation registry."""
    global _registry
    if _registry is None:
        _registry = InMemoryCancellationRegistry()
    return _registry


def set_cancellation_registry(registry: CancellationRegistry) -> None:
    """Install a different registry (e.g. one backed by a shared store)."""
    global _registry
    _registry = registry


def reset_cancellation_registry() -> None:
    """Drop the global registry (for testing)."""
    global _registry
    _registry = None
