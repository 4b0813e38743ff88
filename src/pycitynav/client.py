"""High-level async client tying the caches, packs and fetchers together."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp

from pycitynav._api.nominatim import reverse_geocode
from pycitynav._transport import HttpTransport, Transport
from pycitynav.cache import FALLBACK_ERRORS, CacheLookup, CacheSource
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import CityNavError, LocationError, RequestCancelledError
from pycitynav.location import GeolocationProvider, LocationService, LocationWatch
from pycitynav.models.location import LocationData
from pycitynav.models.pack import PackManifest
from pycitynav.models.poi import Poi
from pycitynav.models.route import Coordinate, RouteResult
from pycitynav.nearby import NearbyPoiService, build_poi_cache
from pycitynav.packs import PackManager
from pycitynav.routing import RouteService, build_route_cache
from pycitynav.storage.database import PackDatabase
from pycitynav.storage.kv import KeyValueStore

_logger = logging.getLogger(__name__)


class CityNavClient:
    """Async entry point for offline packs and cached map lookups.

    Usage::

        async with CityNavClient(CityNavConfig.from_env()) as client:
            nearby = await client.get_nearby_pois(52.37, 4.89)
            await client.save_pack(52.37, 4.89, nearby.value)
    """

    def __init__(
        self,
        config: CityNavConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        provider: GeolocationProvider | None = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or CityNavConfig()
        self._external_session = session is not None
        self._http_session = session
        self._injected_transport = transport
        self._provider = provider
        self._clock = clock
        self._logger = logger or _logger
        self._transport: Transport | None = None
        self._database: PackDatabase | None = None
        self._packs: PackManager | None = None
        self._nearby: NearbyPoiService | None = None
        self._routes: RouteService | None = None
        self._locations: LocationService | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CityNavClient:
        if self._injected_transport is not None:
            self._transport = self._injected_transport
        else:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)

        self._database = await asyncio.to_thread(PackDatabase, self._config.db_path)
        store = KeyValueStore(self._database)
        self._packs = PackManager(
            self._database,
            max_storage_bytes=self._config.max_storage_bytes,
            logger=self._logger,
        )
        self._nearby = NearbyPoiService(
            self._transport,
            self._config,
            build_poi_cache(self._config, store=store, clock=self._clock, logger=self._logger),
        )
        self._routes = RouteService(
            self._transport,
            self._config,
            build_route_cache(self._config, clock=self._clock, logger=self._logger),
        )
        self._locations = LocationService(
            self._provider,
            geocoder=self.reverse_geocode,
            store=store,
            ttl_seconds=self._config.location_ttl_seconds,
            clock=self._clock,
            logger=self._logger,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._locations is not None:
            self._locations.stop_watching()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._packs = None
        self._nearby = None
        self._routes = None
        self._locations = None
        self._database = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> CityNavConfig:
        return self._config

    @property
    def packs(self) -> PackManager:
        if self._packs is None:
            raise CityNavError("Client not initialized. Use 'async with CityNavClient(...) as client:'")
        return self._packs

    @property
    def locations(self) -> LocationService:
        if self._locations is None:
            raise CityNavError("Client not initialized. Use 'async with CityNavClient(...) as client:'")
        return self._locations

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise CityNavError("Client not initialized. Use 'async with CityNavClient(...) as client:'")
        return self._transport

    def _require_nearby(self) -> NearbyPoiService:
        if self._nearby is None:
            raise CityNavError("Client not initialized. Use 'async with CityNavClient(...) as client:'")
        return self._nearby

    def _require_routes(self) -> RouteService:
        if self._routes is None:
            raise CityNavError("Client not initialized. Use 'async with CityNavClient(...) as client:'")
        return self._routes

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_nearby_pois(
        self,
        lat: float,
        lon: float,
        radius: float | None = None,
    ) -> CacheLookup[list[Poi]]:
        return await self._require_nearby().get_nearby(lat, lon, radius)

    async def refresh_nearby_pois(
        self,
        lat: float,
        lon: float,
        radius: float | None = None,
    ) -> CacheLookup[list[Poi]]:
        return await self._require_nearby().refresh(lat, lon, radius)

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> CacheLookup[RouteResult]:
        return await self._require_routes().get_route(origin, destination)

    async def reverse_geocode(self, lat: float, lon: float) -> LocationData:
        return await reverse_geocode(self._require_transport(), self._config, lat, lon, logger=self._logger)

    async def get_current_location(self) -> LocationData:
        return await self.locations.get_current_location()

    def watch_location(
        self,
        on_update: Callable[[LocationData], None],
        on_error: Callable[[LocationError], None],
    ) -> LocationWatch:
        return self.locations.watch(on_update, on_error)

    # ------------------------------------------------------------------
    # Offline packs
    # ------------------------------------------------------------------

    async def save_pack(
        self,
        lat: float,
        lon: float,
        pois: list[Poi],
        *,
        categories: list[str] | None = None,
        compress: bool = True,
    ) -> PackManifest:
        """Persist POIs around a point as an offline pack (idempotent per center)."""
        return await self.packs.create_poi_pack(
            pois,
            center_lat=lat,
            center_lon=lon,
            radius_meters=self._config.pack_radius_meters,
            categories=categories,
            compress=compress,
        )

    async def get_offline_pois(self, lat: float, lon: float) -> tuple[PackManifest, list[Poi]] | None:
        """POIs from the first stored pack covering the point, if any."""
        manifest = await self.packs.find_covering_pack(lat, lon)
        if manifest is None:
            return None
        pois = await self.packs.load_pack_pois(manifest.id)
        if pois is None:
            return None
        self._logger.info("Loaded pack %s with %d pois", manifest.id, len(pois))
        return manifest, pois

    async def get_pois(self, lat: float, lon: float, radius: float | None = None) -> CacheLookup[list[Poi]]:
        """Nearby POIs, falling back to a covering offline pack.

        The pack is consulted only when the live lookup fails and the
        cache has nothing for the point.
        """
        try:
            return await self.get_nearby_pois(lat, lon, radius)
        except (*FALLBACK_ERRORS, RequestCancelledError) as exc:
            offline = await self.get_offline_pois(lat, lon)
            if offline is None:
                raise
            manifest, pois = offline
            return CacheLookup(pois, CacheSource.PACK, manifest.created_at.timestamp(), error=str(exc))
