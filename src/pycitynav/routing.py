"""Point-to-point routes with an in-memory session cache."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pycitynav._api.osrm import fetch_route
from pycitynav._constants import ROUTE_SLOT
from pycitynav._transport import Transport
from pycitynav.cache import CacheLookup, KeyedCache
from pycitynav.config import CityNavConfig
from pycitynav.geo import route_cache_key
from pycitynav.models.route import Coordinate, RouteResult


def build_route_cache(
    config: CityNavConfig,
    *,
    clock: Callable[[], float] = time.time,
    logger: logging.Logger | None = None,
) -> KeyedCache[RouteResult]:
    # Routes never expire within a session and are not persisted.
    return KeyedCache(
        ttl=None,
        max_entries=config.route_cache_max_entries,
        clock=clock,
        name="routes",
        logger=logger,
    )


class RouteService:
    def __init__(
        self,
        transport: Transport,
        config: CityNavConfig,
        cache: KeyedCache[RouteResult],
    ) -> None:
        self._transport = transport
        self._config = config
        self._cache = cache

    @property
    def cache(self) -> KeyedCache[RouteResult]:
        return self._cache

    async def get_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        *,
        slot: str | None = ROUTE_SLOT,
    ) -> CacheLookup[RouteResult]:
        """Route from ``origin`` to ``destination`` (order matters for the cache key)."""
        key = route_cache_key(origin.lat, origin.lon, destination.lat, destination.lon)

        async def _fetch() -> RouteResult:
            return await fetch_route(self._transport, self._config, origin, destination)

        return await self._cache.get_or_fetch(key, _fetch, slot=slot)
