"""
Postgres-backed reputation store and schema.

The reputation_cache row is keyed uniquely by key; writes are
insert-or-replace.
"""

from datetime import datetime

from mailguard.db.helpers import DatabaseError, execute_query, fetch_one
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import ReputationCacheEntry
from mailguard.services.reputation_cache import ReputationStoreError, entry_from_row

logger = get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS reputation_cache (
        key TEXT PRIMARY KEY,
        is_safe BOOLEAN NOT NULL,
        is_blocked BOOLEAN NOT NULL,
        provider TEXT NOT NULL,
        checked_at TIMESTAMPTZ NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reputation_cache_expires ON reputation_cache (expires_at)",
    """
    CREATE TABLE IF NOT EXISTS dns_firewall_providers (
        provider_id TEXT PRIMARY KEY,
        api_endpoint TEXT NOT NULL,
        api_key TEXT,
        is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
        is_default BOOLEAN NOT NULL DEFAULT FALSE,
        timeout_ms INTEGER NOT NULL DEFAULT 5000,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
)

UPSERT_ENTRY = """
INSERT INTO reputation_cache (key, is_safe, is_blocked, provider, checked_at, expires_at)
VALUES (%s, %s, %s, %s, %s, %s)
ON CONFLICT (key) DO UPDATE SET
    is_safe = EXCLUDED.is_safe,
    is_blocked = EXCLUDED.is_blocked,
    provider = EXCLUDED.provider,
    checked_at = EXCLUDED.checked_at,
    expires_at = EXCLUDED.expires_at
"""


async def ensure_schema() -> None:
    """Create the cache and provider tables when missing."""
    for statement in SCHEMA_STATEMENTS:
        await execute_query(statement)
    logger.info("Reputation schema ensured", tables=["reputation_cache", "dns_firewall_providers"])


class PostgresReputationStore:
    backend = "postgres"

    async def get(self, key: str) -> ReputationCacheEntry | None:
        try:
            row = await fetch_one(
                "SELECT key, is_safe, is_blocked, provider, checked_at, expires_at "
                "FROM reputation_cache WHERE key = %s",
                (key,),
            )
        except DatabaseError as e:
            raise ReputationStoreError(str(e), operation="get") from e

        return entry_from_row(row) if row else None

    async def upsert(self, entry: ReputationCacheEntry) -> None:
        try:
            await execute_query(
                UPSERT_ENTRY,
                (
                    entry.key,
                    entry.is_safe,
                    not entry.is_safe,
                    entry.source,
                    entry.checked_at,
                    entry.expires_at,
                ),
            )
        except DatabaseError as e:
            raise ReputationStoreError(str(e), operation="upsert") from e

    async def delete_expired(self, now: datetime) -> int:
        try:
            return await execute_query("DELETE FROM reputation_cache WHERE expires_at < %s", (now,))
        except DatabaseError as e:
            raise ReputationStoreError(str(e), operation="delete_expired") from e
