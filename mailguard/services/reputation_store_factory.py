"""Builds the reputation cache on the backend named by REPUTATION_CACHE_BACKEND."""

from datetime import timedelta

from mailguard.config import Settings, settings
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.repositories.postgres_reputation_repository import PostgresReputationStore
from mailguard.repositories.redis_reputation_repository import RedisReputationStore
from mailguard.services.reputation_cache import InMemoryReputationStore, ReputationCache, ReputationStore

logger = get_logger(__name__)

SUPPORTED_BACKENDS = ("memory", "redis", "postgres")


def create_reputation_store(config: Settings = settings) -> ReputationStore:
    backend = (config.REPUTATION_CACHE_BACKEND or "memory").strip().lower()

    if backend == "redis":
        if not config.REDIS_URL:
            raise ValueError("REPUTATION_CACHE_BACKEND=redis requires REDIS_URL")
        return RedisReputationStore()

    if backend == "postgres":
        if not config.DATABASE_URL:
            raise ValueError("REPUTATION_CACHE_BACKEND=postgres requires DATABASE_URL")
        return PostgresReputationStore()

    if backend != "memory":
        raise ValueError(f"Unknown REPUTATION_CACHE_BACKEND {backend!r}, expected one of {SUPPORTED_BACKENDS}")

    return InMemoryReputationStore()


def create_reputation_cache(config: Settings = settings) -> ReputationCache:
    store = create_reputation_store(config)
    logger.info("Reputation cache configured", backend=store.backend, ttl_s=config.REPUTATION_CACHE_TTL_SECONDS)
    return ReputationCache(store, default_ttl=timedelta(seconds=config.REPUTATION_CACHE_TTL_SECONDS))
