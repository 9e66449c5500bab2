"""
Reputation cache shared by the DNS firewall and sender reputation lookups.

The cache is advisory: every read failure degrades to a miss and every write
failure is dropped, so callers can always fall back to a fresh lookup.
Expiry is lazy; entries past expires_at are skipped on read and only removed
by sweep().
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from mailguard.config import settings
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import ReputationCacheEntry, Verdict

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(seconds=settings.REPUTATION_CACHE_TTL_SECONDS)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class ReputationStoreError(Exception):
    """Raised by store backends when the underlying storage is unavailable."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class ReputationStore(Protocol):
    """Storage capability behind the cache: raw rows, no expiry logic."""

    backend: str

    async def get(self, key: str) -> ReputationCacheEntry | None: ...

    async def upsert(self, entry: ReputationCacheEntry) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...


def entry_to_dict(entry: ReputationCacheEntry) -> dict[str, Any]:
    return {
        "key": entry.key,
        "is_safe": entry.verdict == "safe",
        "is_blocked": entry.verdict == "blocked",
        "provider": entry.source,
        "checked_at": entry.checked_at.isoformat(),
        "expires_at": entry.expires_at.isoformat(),
    }


def entry_from_row(row: dict[str, Any]) -> ReputationCacheEntry:
    """Build an entry from a persisted row (dict with ISO strings or datetimes)."""
    checked_at = row["checked_at"]
    expires_at = row["expires_at"]
    if isinstance(checked_at, str):
        checked_at = datetime.fromisoformat(checked_at)
    if isinstance(expires_at, str):
        expires_at = datetime.fromisoformat(expires_at)

    return ReputationCacheEntry(
        key=row["key"],
        verdict="safe" if row["is_safe"] else "blocked",
        source=row["provider"],
        checked_at=checked_at,
        expires_at=expires_at,
    )


class InMemoryReputationStore:
    """Process-local store. Default backend and the one used in tests."""

    backend = "memory"

    def __init__(self):
        self._entries: dict[str, ReputationCacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> ReputationCacheEntry | None:
        return self._entries.get(key)

    async def upsert(self, entry: ReputationCacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = entry

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class ReputationCache:
    """TTL-keyed read-through cache over a ReputationStore."""

    def __init__(
        self,
        store: ReputationStore | None = None,
        *,
        default_ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utc_now,
    ):
        self.store = store or InMemoryReputationStore()
        self.default_ttl = default_ttl
        self._clock = clock

    @property
    def backend(self) -> str:
        return getattr(self.store, "backend", type(self.store).__name__)

    def now(self) -> datetime:
        return self._clock()

    async def get(self, key: str) -> ReputationCacheEntry | None:
        """
        Return the live entry for key.

        Missing and expired entries are indistinguishable to the caller; a
        storage failure is also reported as a miss.
        """
        try:
            entry = await self.store.get(key)
        except Exception as e:
            logger.warning("Reputation cache read failed", key=key[:40], error=str(e))
            return None

        if entry is None or entry.is_expired(self.now()):
            return None
        return entry

    async def put(
        self, key: str, verdict: Verdict, source: str, ttl: timedelta | None = None
    ) -> ReputationCacheEntry | None:
        """Insert or replace the entry for key (last write wins)."""
        checked_at = self.now()
        entry = ReputationCacheEntry(
            key=key,
            verdict=verdict,
            source=source,
            checked_at=checked_at,
            expires_at=checked_at + (ttl if ttl is not None else self.default_ttl),
        )

        try:
            await self.store.upsert(entry)
        except Exception as e:
            logger.warning("Reputation cache write failed", key=key[:40], error=str(e))
            return None
        return entry

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete entries with expires_at < now. Returns the number removed."""
        cutoff = now or self.now()
        try:
            removed = await self.store.delete_expired(cutoff)
        except Exception as e:
            logger.error("Reputation cache sweep failed", backend=self.backend, error=str(e))
            return 0

        logger.info("Reputation cache swept", backend=self.backend, removed=removed)
        return removed
