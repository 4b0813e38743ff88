"""Nearby POI lookups backed by a persisted TTL cache."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from pycitynav._api.overpass import fetch_nearby_pois
from pycitynav._constants import NEARBY_POIS_NAMESPACE, NEARBY_SLOT
from pycitynav._transport import Transport
from pycitynav.cache import CacheLookup, KeyedCache
from pycitynav.config import CityNavConfig
from pycitynav.geo import poi_cache_key
from pycitynav.models.poi import Poi
from pycitynav.storage.kv import KeyValueStore

_logger = logging.getLogger(__name__)


def _dump_pois(pois: list[Poi]) -> list[dict[str, Any]]:
    return [poi.to_record() for poi in pois]


def _load_pois(raw: Any) -> list[Poi]:
    if not isinstance(raw, list):
        raise ValueError("cached POI payload is not a list")
    return [Poi.model_validate(item) for item in raw]


def build_poi_cache(
    config: CityNavConfig,
    *,
    store: KeyValueStore | None = None,
    clock: Callable[[], float] = time.time,
    logger: logging.Logger | None = None,
) -> KeyedCache[list[Poi]]:
    return KeyedCache(
        ttl=config.poi_ttl_seconds,
        max_entries=config.poi_cache_max_entries,
        clock=clock,
        store=store,
        namespace=NEARBY_POIS_NAMESPACE if store is not None else None,
        dump=_dump_pois if store is not None else None,
        load=_load_pois if store is not None else None,
        name="nearby_pois",
        logger=logger,
    )


class NearbyPoiService:
    """Serve nearby POIs from cache, the Overpass API, or a stale fallback."""

    def __init__(
        self,
        transport: Transport,
        config: CityNavConfig,
        cache: KeyedCache[list[Poi]],
    ) -> None:
        self._transport = transport
        self._config = config
        self._cache = cache

    @property
    def cache(self) -> KeyedCache[list[Poi]]:
        return self._cache

    async def get_nearby(
        self,
        lat: float,
        lon: float,
        radius: float | None = None,
        *,
        slot: str | None = NEARBY_SLOT,
        force: bool = False,
    ) -> CacheLookup[list[Poi]]:
        """POIs around a point.

        A newer call in the same ``slot`` for a different point cancels
        this one's network fetch.
        """
        radius = float(radius if radius is not None else self._config.default_radius_meters)
        key = poi_cache_key(lat, lon, radius)

        async def _fetch() -> list[Poi]:
            return await fetch_nearby_pois(self._transport, self._config, lat, lon, radius)

        return await self._cache.get_or_fetch(key, _fetch, slot=slot, force=force)

    async def refresh(self, lat: float, lon: float, radius: float | None = None) -> CacheLookup[list[Poi]]:
        """Fetch again even if the cached entry is fresh."""
        return await self.get_nearby(lat, lon, radius, force=True)
