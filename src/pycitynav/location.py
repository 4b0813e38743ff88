"""Location acquisition with reverse geocoding and a persisted last-known fix.

:class:`LocationService` is constructed explicitly and handed to
whoever needs it. The last known location and the active watch are
instance state.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

from pydantic import ValidationError

from pycitynav._api.nominatim import fallback_location
from pycitynav._constants import (
    LAST_LOCATION_KEY,
    LOCATION_ERROR_MESSAGES,
    LOCATION_NAMESPACE,
    UNKNOWN_LOCATION_ERROR,
)
from pycitynav.exceptions import LocationError, StorageError, UnsupportedCapabilityError
from pycitynav.geo import haversine_km
from pycitynav.models.location import LocationData, Position

_logger = logging.getLogger(__name__)

Geocoder = Callable[[float, float], Awaitable[LocationData]]


class GeolocationProvider(Protocol):
    """Source of device positions.

    Implementations raise :class:`LocationError` when a fix cannot be
    obtained.
    """

    async def current_position(self) -> Position:
        ...

    def watch_positions(self) -> AsyncIterator[Position]:
        ...


class KeyValueBackend(Protocol):
    async def get(self, namespace: str, key: str) -> str | None:
        ...

    async def set(self, namespace: str, key: str, value: str) -> None:
        ...

    async def delete(self, namespace: str, key: str) -> bool:
        ...


def location_error_message(code: int) -> str:
    return LOCATION_ERROR_MESSAGES.get(code, UNKNOWN_LOCATION_ERROR)


async def _placeholder_geocoder(lat: float, lon: float) -> LocationData:
    return fallback_location(lat, lon)


class FixedPositionProvider:
    """Provider that reports a fixed, externally supplied position.

    Useful for command-line use and for hosts that learn their position
    out of band. ``None`` behaves like a device without a fix.
    """

    def __init__(self, position: Position | None) -> None:
        self._position = position

    async def current_position(self) -> Position:
        if self._position is None:
            raise LocationError(location_error_message(2), code=2)
        return self._position

    async def watch_positions(self) -> AsyncIterator[Position]:
        yield await self.current_position()


class LocationWatch:
    """Handle for an active position watch.

    Once :meth:`stop` returns, no further callbacks fire, including one
    whose reverse geocoding was still in progress.
    """

    def __init__(self) -> None:
        self._active = True
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._active

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait until the watch ends (provider exhausted, error, or stop)."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class LocationService:
    """Current location, continuous watch, and offline persistence.

    Parameters
    ----------
    provider : GeolocationProvider or None
        Position source. ``None`` means the platform has no geolocation.
    geocoder : callable or None
        ``async (lat, lon) -> LocationData``. It must not raise; the
        default produces the placeholder location.
    store : KeyValueBackend or None
        Durable storage for the last known location.
    ttl_seconds : float
        How long a persisted location stays usable.
    clock : callable
        Returns the current epoch time in seconds.
    logger : logging.Logger or None
        Logger to use instead of the module logger.
    """

    def __init__(
        self,
        provider: GeolocationProvider | None,
        *,
        geocoder: Geocoder | None = None,
        store: KeyValueBackend | None = None,
        ttl_seconds: float = 24 * 3600,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._provider = provider
        self._geocoder = geocoder or _placeholder_geocoder
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._logger = logger or _logger
        self._current: LocationData | None = None
        self._watch: LocationWatch | None = None

    @property
    def last_known_location(self) -> LocationData | None:
        return self._current

    @property
    def is_watching(self) -> bool:
        return self._watch is not None and self._watch.active

    def _require_provider(self) -> GeolocationProvider:
        if self._provider is None:
            raise UnsupportedCapabilityError("Geolocation is not supported on this platform")
        return self._provider

    # ------------------------------------------------------------------
    # One-shot and continuous acquisition
    # ------------------------------------------------------------------

    async def get_current_location(self) -> LocationData:
        """Acquire one fix and reverse-geocode it.

        Raises
        ------
        UnsupportedCapabilityError
            If no provider is configured.
        LocationError
            If the provider cannot produce a fix. Reverse geocoding
            failures never raise.
        """
        provider = self._require_provider()
        position = await provider.current_position()
        location = await self._geocoder(position.lat, position.lon)
        self._current = location
        await self.store_location(location)
        return location

    def watch(
        self,
        on_update: Callable[[LocationData], None],
        on_error: Callable[[LocationError], None],
    ) -> LocationWatch:
        """Start a continuous watch; any previous watch is stopped first.

        Provider errors are reported through ``on_error`` and end the
        watch. Unexpected failures are logged and reported as a
        :class:`LocationError` with code ``0``.
        """
        provider = self._require_provider()
        self.stop_watching()
        watch = LocationWatch()
        watch._task = asyncio.create_task(self._run_watch(provider, watch, on_update, on_error))
        self._watch = watch
        return watch

    def stop_watching(self) -> None:
        if self._watch is not None:
            self._watch.stop()
            self._watch = None

    async def _run_watch(
        self,
        provider: GeolocationProvider,
        watch: LocationWatch,
        on_update: Callable[[LocationData], None],
        on_error: Callable[[LocationError], None],
    ) -> None:
        try:
            async for position in provider.watch_positions():
                if not watch.active:
                    return
                location = await self._geocoder(position.lat, position.lon)
                if not watch.active:
                    return
                self._current = location
                on_update(location)
        except LocationError as exc:
            if watch.active:
                on_error(exc)
        except Exception as exc:
            self._logger.exception("Location watch failed")
            if watch.active:
                error = LocationError(f"{UNKNOWN_LOCATION_ERROR}: {exc}")
                error.__cause__ = exc
                on_error(error)
        finally:
            watch._active = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def store_location(self, location: LocationData) -> LocationData:
        """Persist ``location`` stamped with the current time.

        Storage failures are logged; the stamped location is returned
        either way.
        """
        stamped = location.model_copy(update={"timestamp": self._clock()})
        if self._store is None:
            return stamped
        try:
            await self._store.set(LOCATION_NAMESPACE, LAST_LOCATION_KEY, json.dumps(stamped.to_record()))
        except StorageError as exc:
            self._logger.warning("Failed to save location to storage: %s", exc)
        return stamped

    async def load_stored_location(self) -> LocationData | None:
        """Persisted location if it is younger than the TTL.

        Expired or unreadable records are removed.
        """
        if self._store is None:
            return None
        try:
            raw = await self._store.get(LOCATION_NAMESPACE, LAST_LOCATION_KEY)
        except StorageError as exc:
            self._logger.warning("Failed to load location from storage: %s", exc)
            return None
        if raw is None:
            return None

        try:
            location = LocationData.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            self._logger.warning("Stored location is unreadable; removing it")
            await self.clear_stored_location()
            return None

        stamped_at = location.timestamp or 0.0
        if self._clock() - stamped_at >= self._ttl_seconds:
            self._logger.debug("Stored location expired; removing it")
            await self.clear_stored_location()
            return None
        return location

    async def clear_stored_location(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.delete(LOCATION_NAMESPACE, LAST_LOCATION_KEY)
        except StorageError as exc:
            self._logger.warning("Failed to clear stored location: %s", exc)

    @staticmethod
    def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        return haversine_km(lat1, lon1, lat2, lon2)
