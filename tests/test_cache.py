from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import FakeClock

from pycitynav.cache import CacheSource, KeyedCache
from pycitynav.exceptions import DecodeError, NetworkError, NoResultError, RequestCancelledError
from pycitynav.storage.kv import KeyValueStore


class CountingFetch:
    """Fetch callable that records how often it ran."""

    def __init__(self, value: Any = None, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


def _persisted_cache(store: KeyValueStore, clock: FakeClock, *, max_entries: int = 256) -> KeyedCache[dict[str, Any]]:
    return KeyedCache(
        ttl=60.0,
        max_entries=max_entries,
        clock=clock,
        store=store,
        namespace="test",
        dump=lambda value: value,
        load=lambda raw: dict(raw),
    )


@pytest.mark.asyncio
async def test_entry_is_fresh_just_before_ttl_and_refetched_just_after(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    fetch = CountingFetch("fresh")
    await cache.put("k", "cached")

    clock.advance(59.999)
    hit = await cache.get_or_fetch("k", fetch)
    assert hit.source == CacheSource.CACHE
    assert hit.value == "cached"
    assert fetch.calls == 0

    clock.advance(0.002)
    miss = await cache.get_or_fetch("k", fetch)
    assert miss.source == CacheSource.NETWORK
    assert miss.value == "fresh"
    assert miss.timestamp == clock.now
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_successful_fetch_overwrites_entry(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=10.0, clock=clock)
    await cache.put("k", "old")
    clock.advance(11)

    await cache.get_or_fetch("k", CountingFetch("new"))

    entry = await cache.peek("k")
    assert entry is not None
    assert entry.payload == "new"
    assert entry.timestamp == clock.now


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [NetworkError("HTTP 503", status_code=503), NoResultError("No route found"), DecodeError("bad json")],
)
async def test_failed_fetch_serves_stale_entry(clock: FakeClock, error: Exception) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    await cache.put("k", "old")
    stamped = clock.now
    clock.advance(3600)

    result = await cache.get_or_fetch("k", CountingFetch(error=error))

    assert result.source == CacheSource.STALE
    assert result.is_stale
    assert result.value == "old"
    assert result.timestamp == stamped
    assert result.error == str(error)


@pytest.mark.asyncio
async def test_failed_fetch_without_entry_raises(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)

    with pytest.raises(NetworkError):
        await cache.get_or_fetch("k", CountingFetch(error=NetworkError("offline")))

    assert await cache.peek("k") is None


@pytest.mark.asyncio
async def test_force_refetches_fresh_entry(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    await cache.put("k", "cached")
    fetch = CountingFetch("forced")

    result = await cache.get_or_fetch("k", fetch, force=True)

    assert result.source == CacheSource.NETWORK
    assert result.value == "forced"
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_concurrent_requests_for_same_key_share_one_fetch(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    fetch = CountingFetch("shared", delay=0.01)

    results = await asyncio.gather(*(cache.get_or_fetch("k", fetch) for _ in range(5)))

    assert fetch.calls == 1
    assert {r.value for r in results} == {"shared"}
    assert not cache.in_flight("k")


@pytest.mark.asyncio
async def test_newer_request_in_slot_cancels_superseded_fetch(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    gate = asyncio.Event()
    completed: list[str] = []

    async def slow_fetch() -> str:
        await gate.wait()
        completed.append("a")
        return "a"

    first = asyncio.create_task(cache.get_or_fetch("a", slow_fetch, slot="panel"))
    await asyncio.sleep(0)
    assert cache.in_flight("a")

    second = await cache.get_or_fetch("b", CountingFetch("b"), slot="panel")
    gate.set()

    with pytest.raises(RequestCancelledError):
        await first
    assert second.value == "b"
    assert completed == []
    assert await cache.peek("a") is None


@pytest.mark.asyncio
async def test_returning_to_a_superseded_key_starts_a_fresh_fetch(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)

    first = asyncio.create_task(cache.get_or_fetch("k1", CountingFetch("k1-old", delay=0.05), slot="s"))
    await asyncio.sleep(0)
    second = asyncio.create_task(cache.get_or_fetch("k2", CountingFetch("k2", delay=0.05), slot="s"))
    await asyncio.sleep(0)
    fresh_fetch = CountingFetch("k1-new", delay=0.05)
    latest = await cache.get_or_fetch("k1", fresh_fetch, slot="s")

    assert latest.source == CacheSource.NETWORK
    assert latest.value == "k1-new"
    assert fresh_fetch.calls == 1
    with pytest.raises(RequestCancelledError):
        await first
    # k2 was superseded by the final k1 request and has no entry to fall back on.
    with pytest.raises(RequestCancelledError):
        await second


@pytest.mark.asyncio
async def test_superseded_request_falls_back_to_existing_entry(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    await cache.put("a", "old-a")
    clock.advance(120)

    async def never() -> str:
        await asyncio.Event().wait()
        return "unreachable"

    first = asyncio.create_task(cache.get_or_fetch("a", never, slot="panel"))
    await asyncio.sleep(0)
    await cache.get_or_fetch("b", CountingFetch("b"), slot="panel")

    result = await first
    assert result.source == CacheSource.STALE
    assert result.value == "old-a"
    assert "superseded" in (result.error or "")


@pytest.mark.asyncio
async def test_different_slots_do_not_cancel_each_other(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)

    results = await asyncio.gather(
        cache.get_or_fetch("a", CountingFetch("a", delay=0.01), slot="left"),
        cache.get_or_fetch("b", CountingFetch("b", delay=0.01), slot="right"),
    )

    assert [r.value for r in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelling_a_waiter_keeps_the_shared_fetch(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=60.0, clock=clock)
    fetch = CountingFetch("shared", delay=0.02)

    waiter = asyncio.create_task(cache.get_or_fetch("k", fetch))
    other = asyncio.create_task(cache.get_or_fetch("k", fetch))
    await asyncio.sleep(0)
    waiter.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert (await other).value == "shared"
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_lru_bound_evicts_least_recently_used(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=None, max_entries=2, clock=clock)
    await cache.put("a", "1")
    await cache.put("b", "2")
    await cache.peek("a")
    await cache.put("c", "3")

    assert len(cache) == 2
    assert await cache.peek("b") is None
    assert await cache.peek("a") is not None


@pytest.mark.asyncio
async def test_ttl_none_never_expires(clock: FakeClock) -> None:
    cache: KeyedCache[str] = KeyedCache(ttl=None, clock=clock)
    await cache.put("route", "cached")
    clock.advance(10 * 365 * 86400)

    result = await cache.get_or_fetch("route", CountingFetch("new"))

    assert result.source == CacheSource.CACHE


@pytest.mark.asyncio
async def test_persisted_entries_survive_a_new_cache_instance(kv_store: KeyValueStore, clock: FakeClock) -> None:
    await _persisted_cache(kv_store, clock).put("k", {"n": 1})

    reloaded = _persisted_cache(kv_store, clock)
    result = await reloaded.get_or_fetch("k", CountingFetch({"n": 2}))

    assert result.source == CacheSource.CACHE
    assert result.value == {"n": 1}


@pytest.mark.asyncio
async def test_corrupt_persisted_entry_is_a_miss(kv_store: KeyValueStore, clock: FakeClock) -> None:
    await kv_store.set("test", "k", "{not json")

    assert await _persisted_cache(kv_store, clock).peek("k") is None


@pytest.mark.asyncio
async def test_persisted_namespace_is_pruned_to_bound(kv_store: KeyValueStore, clock: FakeClock) -> None:
    cache = _persisted_cache(kv_store, clock, max_entries=2)
    for key in ("a", "b", "c"):
        await cache.put(key, {"key": key})

    assert len(await kv_store.keys("test")) == 2


@pytest.mark.asyncio
async def test_invalidate_and_clear_reach_the_store(kv_store: KeyValueStore, clock: FakeClock) -> None:
    cache = _persisted_cache(kv_store, clock)
    await cache.put("a", {})
    await cache.put("b", {})

    await cache.invalidate("a")
    assert await kv_store.get("test", "a") is None
    assert await cache.peek("b") is not None

    await cache.clear()
    assert len(cache) == 0
    assert await kv_store.keys("test") == []


def test_rejects_store_without_codec(kv_store: KeyValueStore) -> None:
    with pytest.raises(ValueError):
        KeyedCache(ttl=1.0, store=kv_store, namespace="x")
