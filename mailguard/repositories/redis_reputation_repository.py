"""Redis-backed reputation store. Entries are JSON blobs under the reputation: prefix."""

import json
import math
from datetime import datetime

from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import ReputationCacheEntry
from mailguard.services.infrastructure.redis_client import FastRedisClient, fast_redis
from mailguard.services.reputation_cache import ReputationStoreError, entry_from_row, entry_to_dict

logger = get_logger(__name__)

KEY_PREFIX = "reputation:"


def _redis_key(key: str) -> str:
    return f"{KEY_PREFIX}{key}"


class RedisReputationStore:
    backend = "redis"

    def __init__(self, client: FastRedisClient = fast_redis):
        self.client = client

    async def get(self, key: str) -> ReputationCacheEntry | None:
        try:
            raw = await self.client.get(_redis_key(key))
        except Exception as e:
            raise ReputationStoreError(f"Redis GET failed: {e}", operation="get") from e

        if raw is None:
            return None

        try:
            return entry_from_row(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding malformed reputation entry", key=key[:40], error=str(e))
            return None

    async def upsert(self, entry: ReputationCacheEntry) -> None:
        # Redis TTL mirrors expires_at; sweep() only catches what Redis has not evicted yet
        ttl_s = max(1, math.ceil((entry.expires_at - entry.checked_at).total_seconds()))
        try:
            await self.client.set_with_ttl(_redis_key(entry.key), json.dumps(entry_to_dict(entry)), ttl_s)
        except Exception as e:
            raise ReputationStoreError(f"Redis SET failed: {e}", operation="upsert") from e

    async def delete_expired(self, now: datetime) -> int:
        try:
            keys = await self.client.scan_keys(f"{KEY_PREFIX}*")
            expired: list[str] = []
            for redis_key in keys:
                raw = await self.client.get(redis_key)
                if raw is None:
                    continue
                try:
                    entry = entry_from_row(json.loads(raw))
                except (ValueError, KeyError, TypeError):
                    expired.append(redis_key)
                    continue
                if entry.expires_at < now:
                    expired.append(redis_key)

            return await self.client.delete(*expired) if expired else 0
        except Exception as e:
            raise ReputationStoreError(f"Redis sweep failed: {e}", operation="delete_expired") from e
