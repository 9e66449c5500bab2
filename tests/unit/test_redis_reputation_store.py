import json
from datetime import timedelta

import pytest

from mailguard.repositories.redis_reputation_repository import RedisReputationStore
from mailguard.services.reputation_cache import ReputationCache, ReputationStoreError


class DownRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set_with_ttl(self, key, value, ttl_s=None):
        raise ConnectionError("redis down")


@pytest.fixture
def store(fake_redis):
    return RedisReputationStore(fake_redis)


@pytest.fixture
def cache(store, clock):
    return ReputationCache(store, default_ttl=timedelta(hours=1), clock=clock)


@pytest.mark.asyncio
async def test_put_sets_prefixed_key_with_matching_ttl(cache, fake_redis):
    await cache.put("evil.tk", "blocked", "quad9")

    assert fake_redis.ttls == {"reputation:evil.tk": 3600}
    stored = json.loads(fake_redis.store["reputation:evil.tk"])
    assert stored["is_blocked"] is True
    assert stored["provider"] == "quad9"


@pytest.mark.asyncio
async def test_round_trip_through_cache(cache):
    await cache.put("a.com", "safe", "quad9")

    entry = await cache.get("a.com")

    assert entry.verdict == "safe"
    assert entry.source == "quad9"


@pytest.mark.asyncio
async def test_malformed_entry_reads_as_miss(store, fake_redis):
    fake_redis.store["reputation:bad.com"] = "{not json"

    assert await store.get("bad.com") is None


@pytest.mark.asyncio
async def test_sweep_removes_expired_and_malformed(cache, fake_redis, clock):
    await cache.put("old.com", "safe", "quad9", ttl=timedelta(minutes=5))
    await cache.put("fresh.com", "safe", "quad9")
    fake_redis.store["reputation:junk"] = "[]"
    fake_redis.store["unrelated"] = "keep"
    clock.advance(minutes=10)

    removed = await cache.sweep()

    assert removed == 2
    assert set(fake_redis.store) == {"reputation:fresh.com", "unrelated"}


@pytest.mark.asyncio
async def test_backend_errors_are_wrapped():
    store = RedisReputationStore(DownRedis())

    with pytest.raises(ReputationStoreError) as exc:
        await store.get("a.com")
    assert exc.value.operation == "get"


@pytest.mark.asyncio
async def test_cache_degrades_to_miss_when_redis_is_down(clock):
    cache = ReputationCache(RedisReputationStore(DownRedis()), clock=clock)

    assert await cache.put("a.com", "safe", "quad9") is None
    assert await cache.get("a.com") is None
