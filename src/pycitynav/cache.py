"""Ephemeral keyed cache with TTL expiry and stale fallback.

A :class:`KeyedCache` maps a derived string key to a timestamped
payload. Reads go through :meth:`KeyedCache.get_or_fetch`:

1. a fresh entry is served without touching the network;
2. otherwise the fetch for that key is started, or joined when one is
   already in flight, so identical concurrent requests share one call;
3. a successful fetch overwrites the entry in place;
4. a failed fetch falls back to the last entry for the key, however
   old, and only raises when there is nothing to fall back on.

Requests may name a *slot* (a logical consumer such as "the nearby
panel"). A request for a different key in the same slot cancels the
fetch that slot was waiting on, and a cancelled fetch never writes.

The in-memory map is a bounded LRU. When a durable
:class:`~pycitynav.storage.KeyValueStore` is attached, entries are also
persisted as JSON ``{"timestamp", "payload"}`` envelopes and the
namespace is pruned to the same bound.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from pycitynav.exceptions import (
    CityNavError,
    DecodeError,
    NetworkError,
    NoResultError,
    RequestCancelledError,
    StorageError,
)
from pycitynav.storage.kv import KeyValueStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that may be answered with a stale entry.
FALLBACK_ERRORS: tuple[type[CityNavError], ...] = (NetworkError, NoResultError, DecodeError)


class CacheSource(StrEnum):
    CACHE = "cache"
    NETWORK = "network"
    STALE = "stale"
    PACK = "pack"


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    key: str
    timestamp: float
    payload: T


@dataclass(frozen=True, slots=True)
class CacheLookup(Generic[T]):
    """Result of a cache read.

    ``error`` carries the message of the failure that forced a stale or
    offline-pack fallback; it is ``None`` for fresh and network results.
    """

    value: T
    source: CacheSource
    timestamp: float
    error: str | None = None

    @property
    def is_stale(self) -> bool:
        return self.source in (CacheSource.STALE, CacheSource.PACK)


class KeyedCache(Generic[T]):
    """TTL cache with stale fallback, request coalescing and slot cancellation.

    Parameters
    ----------
    ttl : float or None
        Freshness window in seconds. ``None`` means entries never expire.
    max_entries : int or None
        LRU bound. ``None`` disables eviction.
    clock : callable
        Returns the current epoch time in seconds.
    store : KeyValueStore or None
        Durable backing. Requires ``namespace``, ``dump`` and ``load``.
    namespace : str or None
        Namespace used in ``store``.
    dump, load : callable or None
        Convert a payload to and from a JSON-compatible value.
    name : str
        Label used in log lines.
    logger : logging.Logger or None
        Logger to use instead of the module logger.
    """

    def __init__(
        self,
        *,
        ttl: float | None,
        max_entries: int | None = 256,
        clock: Callable[[], float] = time.time,
        store: KeyValueStore | None = None,
        namespace: str | None = None,
        dump: Callable[[T], Any] | None = None,
        load: Callable[[Any], T] | None = None,
        name: str = "cache",
        logger: logging.Logger | None = None,
    ) -> None:
        if ttl is not None and ttl < 0:
            raise ValueError("ttl must be >= 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if store is not None and (namespace is None or dump is None or load is None):
            raise ValueError("a durable store requires namespace, dump and load")

        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._store = store
        self._namespace = namespace
        self._dump = dump
        self._load = load
        self._name = name
        self._logger = logger or _logger
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._inflight: dict[str, asyncio.Task[CacheEntry[T]]] = {}
        self._slots: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def ttl(self) -> float | None:
        return self._ttl

    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        if self._ttl is None:
            return True
        return (self._clock() - entry.timestamp) < self._ttl

    def in_flight(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def peek(self, key: str) -> CacheEntry[T] | None:
        """Return the entry for ``key`` regardless of freshness, or ``None``."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
            return entry
        entry = await self._load_persisted(key)
        if entry is not None:
            self._remember(entry)
        return entry

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        *,
        slot: str | None = None,
        force: bool = False,
    ) -> CacheLookup[T]:
        """Serve ``key`` from cache or network.

        ``force`` skips the freshness check but keeps the stale fallback.

        Raises
        ------
        NetworkError, NoResultError, DecodeError
            When the fetch fails and no entry exists for ``key``.
        RequestCancelledError
            When a newer request in the same slot superseded this one
            and no entry exists for ``key``.
        """
        entry = await self.peek(key)
        if slot is not None:
            self._claim_slot(slot, key)

        if not force and entry is not None and self.is_fresh(entry):
            self._logger.debug("%s hit key=%s", self._name, key)
            return CacheLookup(entry.payload, CacheSource.CACHE, entry.timestamp)

        task = self._inflight.get(key)
        if task is None or task.done():
            self._logger.debug(
                "%s miss key=%s reason=%s",
                self._name,
                key,
                "expired" if entry is not None else "not_found",
            )
            task = asyncio.create_task(self._run_fetch(key, fetch))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            self._logger.debug("%s join in-flight fetch key=%s", self._name, key)

        try:
            fetched = await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                # The caller itself was cancelled; the shared fetch keeps running.
                raise
            return await self._fallback(key, RequestCancelledError(f"Request for {key} was superseded"))
        except FALLBACK_ERRORS as exc:
            return await self._fallback(key, exc)

        return CacheLookup(fetched.payload, CacheSource.NETWORK, fetched.timestamp)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, key: str, payload: T) -> CacheEntry[T]:
        """Store ``payload`` under ``key`` with the current timestamp."""
        entry = CacheEntry(key=key, timestamp=self._clock(), payload=payload)
        self._remember(entry)
        await self._persist(entry)
        return entry

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        if self._store is not None and self._namespace is not None:
            await self._store.delete(self._namespace, key)

    async def clear(self) -> None:
        self._entries.clear()
        if self._store is not None and self._namespace is not None:
            await self._store.clear(self._namespace)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> CacheEntry[T]:
        payload = await fetch()
        # Cancellation lands before this point, so a superseded fetch never writes.
        return await self.put(key, payload)

    async def _fallback(self, key: str, exc: CityNavError) -> CacheLookup[T]:
        entry = await self.peek(key)
        if entry is None:
            raise exc
        self._logger.warning(
            "%s serving stale entry key=%s age=%.0fs error=%s",
            self._name,
            key,
            self._clock() - entry.timestamp,
            exc,
        )
        return CacheLookup(entry.payload, CacheSource.STALE, entry.timestamp, error=str(exc))

    def _claim_slot(self, slot: str, key: str) -> None:
        previous = self._slots.get(slot)
        self._slots[slot] = key
        if previous is None or previous == key:
            return
        if previous in self._slots.values():
            # Another slot still wants the old key.
            return
        task = self._inflight.get(previous)
        if task is not None and not task.done():
            self._logger.debug("%s cancel superseded fetch key=%s slot=%s", self._name, previous, slot)
            task.cancel()
            # A later request for the same key must start a fresh fetch, not join this one.
            del self._inflight[previous]

    def _forget(self, key: str, task: asyncio.Task[CacheEntry[T]]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters already received it.
            task.exception()

    def _remember(self, entry: CacheEntry[T]) -> None:
        self._entries[entry.key] = entry
        self._entries.move_to_end(entry.key)
        if self._max_entries is None:
            return
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._logger.debug("%s evict key=%s", self._name, evicted)

    async def _persist(self, entry: CacheEntry[T]) -> None:
        if self._store is None or self._namespace is None or self._dump is None:
            return
        envelope = {"timestamp": entry.timestamp, "payload": self._dump(entry.payload)}
        try:
            await self._store.set(self._namespace, entry.key, json.dumps(envelope, ensure_ascii=False))
            if self._max_entries is not None:
                await self._store.prune(self._namespace, self._max_entries)
        except StorageError as exc:
            self._logger.warning("%s persist failed key=%s error=%s", self._name, entry.key, exc)

    async def _load_persisted(self, key: str) -> CacheEntry[T] | None:
        if self._store is None or self._namespace is None or self._load is None:
            return None
        try:
            raw = await self._store.get(self._namespace, key)
        except StorageError as exc:
            self._logger.warning("%s load failed key=%s error=%s", self._name, key, exc)
            return None
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
            return CacheEntry(
                key=key,
                timestamp=float(envelope["timestamp"]),
                payload=self._load(envelope["payload"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError):
            # Corrupt envelopes are treated as a miss.
            self._logger.debug("%s ignoring unreadable entry key=%s", self._name, key, exc_info=True)
            return None
