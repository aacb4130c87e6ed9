"""Credential resolution, usage auditing, and rotation.

Every stage invocation needs one API key for its provider. Keys are tried in
a fixed priority order:

1. A transient key the caller passed explicitly for this call (BYOK)
2. The authenticated user's stored primary key for the provider (BYOK)
3. The operator's shared key from the environment (rate-limited, shared)

If none is available the stage fails with MissingCredential, which the retry
executor never retries.

Usage (success, latency, tokens) is recorded against stored keys after each
call. Recording is detached from the stage result: it runs as a background
task and its failures are logged, never raised.

Rotation replaces a stored key with a new record that inherits its settings
and deactivates the old one, so usage attributed to the old id stays
queryable and requests already holding the old key finish normally.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Literal

from offerflow.core.config import PROVIDER_ENV_VARS, RotationConfig
from offerflow.core.errors import MissingCredential

logger = logging.getLogger(__name__)

CredentialSource = Literal["byok", "env"]


def mask_key(key: str, visible: int = RotationConfig.KEY_PREVIEW_CHARS) -> str:
    """Render a key for logs: only the last few characters are shown."""
    if not key:
        return ""
    if len(key) <= visible:
        return "*" * len(key)
    return f"...{key[-visible:]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CredentialResolution:
    """The key a stage will use, and where it came from.

    Ephemeral: produced once per stage invocation and never persisted.
    """

    key: str
    provider: str
    source: CredentialSource
    key_id: str | None = None

    def __repr__(self) -> str:
        return (
            f"CredentialResolution(key={mask_key(self.key)!r}, provider={self.provider!r}, "
            f"source={self.source!r}, key_id={self.key_id!r})"
        )


@dataclass
class UsageRecord:
    """One request made with a stored credential."""

    success: bool
    latency_ms: int
    tokens: int = 0
    model: str = ""
    action: str = ""
    error_message: str | None = None
    timestamp: datetime = field(default_factory=_now)


@dataclass
class StoredCredential:
    """A user's key as held by the credential store."""

    key_id: str
    user_id: str
    provider: str
    secret: str
    name: str = "API key"
    is_active: bool = True
    is_primary: bool = False
    priority: int = 0
    rate_limit: int | None = None
    created_at: datetime = field(default_factory=_now)
    expires_at: datetime | None = None
    usage_count: int = 0
    last_used_at: datetime | None = None

    @property
    def preview(self) -> str:
        return mask_key(self.secret)

    def is_usable(self, now: datetime | None = None) -> bool:
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > (now or _now())

    def __repr__(self) -> str:
        return (
            f"StoredCredential(key_id={self.key_id!r}, provider={self.provider!r}, "
            f"name={self.name!r}, secret={self.preview!r}, active={self.is_active}, "
            f"primary={self.is_primary})"
        )


@dataclass
class RotationResult:
    """Outcome of rotate_credential()."""

    success: bool
    message: str
    new_key_id: str | None = None
    old_key_id: str | None = None


@dataclass
class UsageSummary:
    """Aggregated usage of one credential."""

    total_requests: int = 0
    successful_requests: int = 0
    total_tokens: int = 0
    avg_latency_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.successful_requests / self.total_requests


def shared_key_from_env(provider: str) -> str | None:
    """Operator-supplied key for ``provider`` from the environment, if any."""
    for env_var in PROVIDER_ENV_VARS.get(provider.lower(), ()):
        value = os.environ.get(env_var)
        if value:
            return value
    return None


class CredentialStore(ABC):
    """Storage collaborator for stored and shared credentials."""

    @abstractmethod
    async def get_primary_key(self, user_id: str, provider: str) -> StoredCredential | None:
        """The user's usable key for ``provider``, preferring the primary one."""

    @abstractmethod
    async def get_shared_key(self, provider: str) -> str | None:
        """The process-wide operator key for ``provider``."""

    @abstractmethod
    async def record_usage(self, key_id: str, usage: UsageRecord) -> None:
        """Append a usage record for ``key_id``."""


class InMemoryCredentialStore(CredentialStore):
    """Dictionary-backed store; shared keys come from the environment.

    Args:
        shared_keys: Explicit provider -> key mapping. When given, it replaces
            the environment lookup (useful for tests and embedded use).
    """

    def __init__(self, shared_keys: dict[str, str] | None = None):
        self._credentials: dict[str, StoredCredential] = {}
        self._usage: dict[str, list[UsageRecord]] = {}
        self._shared_keys = shared_keys

    # -- Collaborator interface --

    async def get_primary_key(self, user_id: str, provider: str) -> StoredCredential | None:
        now = _now()
        candidates = [
            c for c in self._credentials.values()
            if c.user_id == user_id and c.provider == provider and c.is_usable(now)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: (c.is_primary, c.priority, c.created_at))

    async def get_shared_key(self, provider: str) -> str | None:
        if self._shared_keys is not None:
            return self._shared_keys.get(provider)
        return shared_key_from_env(provider)

    async def record_usage(self, key_id: str, usage: UsageRecord) -> None:
        self._usage.setdefault(key_id, []).append(usage)
        credential = self._credentials.get(key_id)
        if credential is not None:
            credential.usage_count += 1
            credential.last_used_at = usage.timestamp

    # -- Management --

    def add_credential(
        self,
        user_id: str,
        provider: str,
        secret: str,
        name: str = "API key",
        is_primary: bool = True,
        priority: int = 0,
        rate_limit: int | None = None,
        expires_at: datetime | None = None,
    ) -> StoredCredential:
        """Store a new key. A new primary key demotes the user's other primaries."""
        if is_primary:
            self._demote_primaries(user_id, provider)
        credential = StoredCredential(
            key_id=uuid.uuid4().hex,
            user_id=user_id,
            provider=provider,
            secret=secret,
            name=name,
            is_primary=is_primary,
            priority=priority,
            rate_limit=rate_limit,
            expires_at=expires_at,
        )
        self._credentials[credential.key_id] = credential
        logger.info(f"Stored {provider} key {credential.preview} for user {user_id}")
        return credential

    def get(self, key_id: str) -> StoredCredential | None:
        return self._credentials.get(key_id)

    def set_primary(self, user_id: str, key_id: str) -> bool:
        """Make ``key_id`` the user's primary key for its provider."""
        credential = self._credentials.get(key_id)
        if credential is None or credential.user_id != user_id:
            return False
        self._demote_primaries(user_id, credential.provider)
        credential.is_primary = True
        return True

    def rotate_credential(
        self,
        user_id: str,
        old_key_id: str,
        new_secret: str,
        delete_old: bool = False,
    ) -> RotationResult:
        """Replace a stored key, inheriting its settings.

        The old record is deactivated (or deleted when ``delete_old``); its
        usage history is kept either way.
        """
        old = self._credentials.get(old_key_id)
        if old is None or old.user_id != user_id:
            return RotationResult(success=False, message="Old API key not found")

        new = replace(
            old,
            key_id=uuid.uuid4().hex,
            secret=new_secret,
            name=f"{old.name} (Rotated)",
            is_active=True,
            created_at=_now(),
            usage_count=0,
            last_used_at=None,
        )
        self._credentials[new.key_id] = new

        if delete_old:
            del self._credentials[old_key_id]
            outcome = "Old key deleted."
        else:
            old.is_active = False
            old.is_primary = False
            old.priority = 0
            old.name = f"{old.name} (Deprecated)"
            outcome = "Old key marked as deprecated."

        logger.info(f"Rotated {old.provider} key {old.preview} -> {new.preview} for user {user_id}")
        return RotationResult(
            success=True,
            message=f"API key rotated successfully. {outcome}",
            new_key_id=new.key_id,
            old_key_id=old_key_id,
        )

    def keys_needing_rotation(self, user_id: str, now: datetime | None = None) -> list[dict]:
        """Active keys older than RotationConfig.MAX_KEY_AGE_DAYS."""
        now = now or _now()
        cutoff = now - timedelta(days=RotationConfig.MAX_KEY_AGE_DAYS)
        return [
            {
                "id": c.key_id,
                "name": c.name,
                "provider": c.provider,
                "days_since_creation": (now - c.created_at).days,
            }
            for c in self._credentials.values()
            if c.user_id == user_id and c.is_active and c.created_at <= cutoff
        ]

    def rotation_history(self, user_id: str, provider: str | None = None) -> list[StoredCredential]:
        """All of a user's keys, including deprecated ones, newest first."""
        keys = [
            c for c in self._credentials.values()
            if c.user_id == user_id and (provider is None or c.provider == provider)
        ]
        return sorted(keys, key=lambda c: c.created_at, reverse=True)

    def usage_for(self, key_id: str) -> list[UsageRecord]:
        return list(self._usage.get(key_id, []))

    def usage_summary(self, key_id: str) -> UsageSummary:
        records = self._usage.get(key_id, [])
        if not records:
            return UsageSummary()
        return UsageSummary(
            total_requests=len(records),
            successful_requests=sum(1 for r in records if r.success),
            total_tokens=sum(r.tokens for r in records),
            avg_latency_ms=sum(r.latency_ms for r in records) / len(records),
        )

    def _demote_primaries(self, user_id: str, provider: str) -> None:
        for c in self._credentials.values():
            if c.user_id == user_id and c.provider == provider:
                c.is_primary = False


class CredentialResolver:
    """Pick the credential for a stage call and audit its usage.

    Usage:
        resolver = CredentialResolver(store)
        credential = await resolver.require("openrouter", caller_key, user_id)
        ...
        resolver.record_usage_detached(credential, UsageRecord(...))
    """

    def __init__(self, store: CredentialStore | None = None):
        self.store = store or InMemoryCredentialStore()
        self._pending: set[asyncio.Task] = set()

    async def resolve(
        self,
        provider: str,
        caller_key: str | None = None,
        user_id: str | None = None,
    ) -> CredentialResolution | None:
        """Resolve a key by priority; None when nothing is configured."""
        if caller_key:
            logger.debug(f"Using caller-supplied {provider} key {mask_key(caller_key)}")
            return CredentialResolution(key=caller_key, provider=provider, source="byok")

        if user_id:
            try:
                stored = await self.store.get_primary_key(user_id, provider)
            except Exception as e:
                logger.error(f"Could not read stored {provider} key for user {user_id}: {e}")
                stored = None
            if stored is not None:
                logger.debug(f"Using stored {provider} key {stored.preview} for user {user_id}")
                return CredentialResolution(
                    key=stored.secret,
                    provider=provider,
                    source="byok",
                    key_id=stored.key_id,
                )

        shared = await self.store.get_shared_key(provider)
        if shared:
            logger.debug(f"Using shared {provider} key from environment")
            return CredentialResolution(key=shared, provider=provider, source="env")

        logger.warning(f"No API key found for {provider}")
        return None

    async def require(
        self,
        provider: str,
        caller_key: str | None = None,
        user_id: str | None = None,
        context: str = "",
    ) -> CredentialResolution:
        """Like resolve(), but raise MissingCredential instead of returning None."""
        resolution = await self.resolve(provider, caller_key, user_id)
        if resolution is None:
            raise MissingCredential(f"No API key configured for provider '{provider}'", context)
        return resolution

    def record_usage_detached(
        self,
        resolution: CredentialResolution,
        usage: UsageRecord,
    ) -> asyncio.Task | None:
        """Record usage in the background; failures are logged, never raised.

        Only stored credentials (those with a key_id) are audited.
        """
        if resolution.key_id is None:
            return None
        task = asyncio.create_task(self._record(resolution.key_id, usage))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _record(self, key_id: str, usage: UsageRecord) -> None:
        try:
            await self.store.record_usage(key_id, usage)
        except Exception as e:
            logger.warning(f"Failed to record usage for key {key_id}: {e}")

    async def drain(self) -> None:
        """Wait for pending usage writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
