from datetime import timedelta

import pytest

from mailguard.services.reputation_cache import ReputationCache, ReputationStoreError


class BrokenStore:
    backend = "broken"

    async def get(self, key):
        raise ReputationStoreError("store offline", operation="get")

    async def upsert(self, entry):
        raise ReputationStoreError("store offline", operation="upsert")

    async def delete_expired(self, now):
        raise ReputationStoreError("store offline", operation="delete_expired")


@pytest.mark.asyncio
async def test_put_then_get_round_trip_until_ttl(reputation_cache, clock):
    await reputation_cache.put("example.com", "blocked", "quad9", ttl=timedelta(hours=1))

    entry = await reputation_cache.get("example.com")
    assert entry is not None
    assert entry.verdict == "blocked"
    assert entry.source == "quad9"
    assert entry.is_safe is False

    clock.advance(minutes=59)
    assert await reputation_cache.get("example.com") is not None

    clock.advance(minutes=1)
    assert await reputation_cache.get("example.com") is None


@pytest.mark.asyncio
async def test_put_uses_default_ttl(reputation_cache, clock):
    entry = await reputation_cache.put("example.com", "safe", "quad9")

    assert entry.expires_at - entry.checked_at == timedelta(hours=24)


@pytest.mark.asyncio
async def test_put_overwrites_existing_entry(reputation_cache):
    await reputation_cache.put("example.com", "safe", "quad9")
    await reputation_cache.put("example.com", "blocked", "other")

    entry = await reputation_cache.get("example.com")
    assert entry.verdict == "blocked"
    assert entry.source == "other"


@pytest.mark.asyncio
async def test_sweep_removes_only_expired_entries(reputation_cache, memory_store, clock):
    await reputation_cache.put("old.com", "safe", "quad9", ttl=timedelta(minutes=5))
    await reputation_cache.put("fresh.com", "safe", "quad9", ttl=timedelta(hours=2))

    clock.advance(minutes=10)
    removed = await reputation_cache.sweep()

    assert removed == 1
    assert len(memory_store) == 1
    assert await reputation_cache.get("fresh.com") is not None


@pytest.mark.asyncio
async def test_sweep_keeps_entry_expiring_exactly_now(reputation_cache, memory_store, clock):
    await reputation_cache.put("edge.com", "safe", "quad9", ttl=timedelta(minutes=5))
    clock.advance(minutes=5)

    assert await reputation_cache.sweep() == 0
    assert len(memory_store) == 1
    # already invisible to readers
    assert await reputation_cache.get("edge.com") is None


@pytest.mark.asyncio
async def test_store_failures_degrade_to_miss(clock):
    cache = ReputationCache(BrokenStore(), clock=clock)

    assert await cache.put("example.com", "safe", "quad9") is None
    assert await cache.get("example.com") is None
    assert await cache.sweep() == 0
    assert cache.backend == "broken"
