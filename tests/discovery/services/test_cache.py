from __future__ import annotations

import asyncio

from discovery.services.cache import (
    CacheGateway,
    CacheKeys,
    InMemoryCacheStore,
    build_cache_store,
    cache_control,
    normalize_query,
)
from tests.helpers.discovery_fakes import BrokenCacheStore, FakeClock


def test_gateway_round_trips_json_values():
    gateway = CacheGateway(InMemoryCacheStore(), namespace="t")

    async def scenario():
        assert await gateway.set("k", {"books": [1, 2]}, 60) is True
        entry = await gateway.get_entry("k")
        return await gateway.get("k"), entry

    value, entry = asyncio.run(scenario())
    assert value == {"books": [1, 2]}
    assert entry is not None and entry.cached_at is not None


def test_gateway_keeps_an_empty_injected_store():
    store = InMemoryCacheStore()
    assert len(store) == 0
    assert CacheGateway(store).store is store


def test_gateway_prefixes_namespace_in_store():
    store = InMemoryCacheStore()
    gateway = CacheGateway(store, namespace="discovery")
    asyncio.run(gateway.set("search:x", 1, 60))
    assert asyncio.run(store.get("discovery:search:x")) is not None
    assert asyncio.run(store.get("search:x")) is None


def test_entries_expire_after_ttl():
    clock = FakeClock()
    store = InMemoryCacheStore(clock=clock)
    gateway = CacheGateway(store)
    asyncio.run(gateway.set("k", "v", 10))
    clock.advance(9)
    assert asyncio.run(gateway.get("k")) == "v"
    clock.advance(1)
    assert asyncio.run(gateway.get("k")) is None


def test_in_memory_store_evicts_when_full():
    clock = FakeClock()
    store = InMemoryCacheStore(clock=clock, max_entries=2)

    async def scenario():
        await store.set("a", "1", 10)
        await store.set("b", "2", 20)
        await store.set("c", "3", 30)

    asyncio.run(scenario())
    assert len(store) == 2
    assert asyncio.run(store.get("a")) is None
    assert asyncio.run(store.get("c")) == "3"


def test_store_failure_degrades_to_miss_and_noop():
    store = BrokenCacheStore()
    gateway = CacheGateway(store)

    async def scenario():
        written = await gateway.set("k", {"v": 1}, 60)
        read = await gateway.get("k")
        deleted = await gateway.delete("k")
        return written, read, deleted

    assert asyncio.run(scenario()) == (False, None, False)
    assert store.calls == 3


def test_corrupt_entries_are_treated_as_miss():
    store = InMemoryCacheStore()
    gateway = CacheGateway(store, namespace="")
    asyncio.run(store.set("k", "not json at all", 60))
    assert asyncio.run(gateway.get("k")) is None


def test_unserializable_values_are_not_cached():
    gateway = CacheGateway(InMemoryCacheStore())
    assert asyncio.run(gateway.set("k", {"bad": object()}, 60)) is False


def test_search_keys_normalize_query():
    first = CacheKeys.search("direct", "  Dune   Herbert ", 20, 0)
    second = CacheKeys.search("direct", "dune herbert", 20, 0)
    assert first == second
    assert first != CacheKeys.search("promptDriven", "dune herbert", 20, 0)
    assert first != CacheKeys.search("direct", "dune herbert", 10, 0)
    assert first != CacheKeys.search("direct", "dune herbert", 20, 20)
    assert normalize_query("  A  B ") == "a b"


def test_related_keys_depend_on_every_option():
    base = dict(max=10, authors_on=True, genres_on=True, exclude=False, title="", authors=[], genres=[])
    key = CacheKeys.related_books("vol1", **base)
    assert key == CacheKeys.related_books("vol1", **dict(reversed(list(base.items()))))
    assert key != CacheKeys.related_books("vol1", **{**base, "exclude": True})
    assert key != CacheKeys.related_books("vol2", **base)


def test_home_keys_distinguish_favorites_flag():
    assert CacheKeys.home_recommendations("u1", 10, True) != CacheKeys.home_recommendations("u1", 10, False)


def test_cache_control_rendering():
    assert cache_control(None) == "no-cache"
    assert cache_control(300) == "public, max-age=300"


def test_build_cache_store_without_url_is_in_memory():
    assert isinstance(build_cache_store(None), InMemoryCacheStore)
