"""Unit tests for the in-memory search result cache."""

import pytest

from entity_search.adapters.search_cache import SEARCH_CACHE_TAG, InMemorySearchCache, SearchCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemorySearchCache(clock=clock)


@pytest.mark.unit
class TestInMemorySearchCache:
    def test_satisfies_cache_protocol(self, cache):
        assert isinstance(cache, SearchCache)

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        await cache.set("search:1:abc", {"total": 3}, ttl=60)

        assert await cache.get("search:1:abc") == {"total": 3}
        assert cache.hits == 1

    @pytest.mark.asyncio
    async def test_miss_is_counted(self, cache):
        assert await cache.get("absent") is None
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, cache, clock):
        await cache.set("key", "value", ttl=30)

        clock.now += 29
        assert await cache.get("key") == "value"

        clock.now += 1
        assert await cache.get("key") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_by_tags_only_drops_tagged_entries(self, cache):
        await cache.set("search:1:a", 1, ttl=60, tags=[SEARCH_CACHE_TAG])
        await cache.set("search:1:b", 2, ttl=60, tags=[SEARCH_CACHE_TAG, "other"])
        await cache.set("profile:1", 3, ttl=60, tags=["profile"])

        await cache.invalidate_by_tags([SEARCH_CACHE_TAG])

        assert await cache.get("search:1:a") is None
        assert await cache.get("search:1:b") is None
        assert await cache.get("profile:1") == 3

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, cache):
        await cache.set("a", 1, ttl=60)
        await cache.set("b", 2, ttl=60)

        await cache.delete("a")
        assert len(cache) == 1

        await cache.clear()
        assert len(cache) == 0
        assert cache.stats()["hits"] == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, cache, clock):
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2, ttl=500)

        clock.now += 10

        assert cache.purge_expired() == 1
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.set("a", 1, ttl=60)
        await cache.get("a")
        await cache.get("a")
        await cache.get("b")
        await cache.get("c")

        stats = cache.stats()

        assert stats["hits"] == 2
        assert stats["misses"] == 2
        assert stats["hit_rate"] == 50.0
        assert stats["total_keys"] == 1
