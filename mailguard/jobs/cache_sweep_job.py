"""
Reputation cache sweep job.

Removes entries past expires_at from the configured reputation store. Reads
already skip expired entries, so the sweep only reclaims space.

Usage:
    python -m mailguard.jobs.worker cache_sweep
"""

import asyncio
import time

from mailguard.config import settings
from mailguard.db.pool import db_pool
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.services.infrastructure.redis_client import fast_redis
from mailguard.services.reputation_cache import ReputationCache
from mailguard.services.reputation_store_factory import create_reputation_cache

logger = get_logger(__name__)

RETRY_DELAY_SECONDS = 300


class CacheSweepJob:
    def __init__(self, cache: ReputationCache):
        self.cache = cache
        self.is_running = False

    async def run_sweep(self) -> dict:
        if self.is_running:
            logger.warning("Cache sweep already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        started = time.perf_counter()
        try:
            removed = await self.cache.sweep()
        finally:
            self.is_running = False

        result = {
            "success": True,
            "backend": self.cache.backend,
            "removed": removed,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }
        logger.info("Cache sweep completed", **result)
        return result


async def _open_backends() -> list[str]:
    """Open the connection the configured store needs; returns what was opened."""
    backend = settings.REPUTATION_CACHE_BACKEND.strip().lower()
    if backend == "postgres":
        await db_pool.initialize()
        return ["database_pool"]
    if backend == "redis":
        await fast_redis.initialize()
        return ["redis"]
    return []


async def _close_backends(opened: list[str]) -> None:
    if "redis" in opened:
        await fast_redis.close()

    if "database_pool" in opened:
        try:
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))


async def start_cache_sweep_scheduler(
    cache: ReputationCache | None = None, interval_s: int | None = None, max_runs: int | None = None
) -> None:
    """Sweep every CACHE_SWEEP_INTERVAL_SECONDS until cancelled (or max_runs sweeps)."""
    interval = interval_s if interval_s is not None else settings.CACHE_SWEEP_INTERVAL_SECONDS

    opened: list[str] = []
    try:
        if cache is None:
            opened = await _open_backends()
            cache = create_reputation_cache(settings)

        job = CacheSweepJob(cache)
        logger.info("Starting cache sweep scheduler", interval_seconds=interval, backend=cache.backend)

        runs = 0
        while max_runs is None or runs < max_runs:
            try:
                await job.run_sweep()
                runs += 1
                if max_runs is not None and runs >= max_runs:
                    break
                await asyncio.sleep(interval)
            except Exception as e:
                logger.error("Error in cache sweep scheduler", error=str(e), error_type=type(e).__name__)
                runs += 1
                await asyncio.sleep(RETRY_DELAY_SECONDS)
    finally:
        await _close_backends(opened)


async def run_cache_sweep_once() -> None:
    """Single sweep for cron-style deployments."""
    await start_cache_sweep_scheduler(max_runs=1)
