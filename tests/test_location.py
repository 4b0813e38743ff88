from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
from conftest import FakeClock

from pycitynav._constants import LAST_LOCATION_KEY, LOCATION_NAMESPACE
from pycitynav.exceptions import LocationError, NetworkError, UnsupportedCapabilityError
from pycitynav.location import FixedPositionProvider, LocationService, location_error_message
from pycitynav.models.location import LocationData, Position


class MemoryStore:
    def __init__(self) -> None:
        self.values: dict[tuple[str, str], str] = {}

    async def get(self, namespace: str, key: str) -> str | None:
        return self.values.get((namespace, key))

    async def set(self, namespace: str, key: str, value: str) -> None:
        self.values[(namespace, key)] = value

    async def delete(self, namespace: str, key: str) -> bool:
        return self.values.pop((namespace, key), None) is not None


class ScriptedProvider:
    """Yields queued positions; a queued exception is raised instead."""

    def __init__(self, *items: Position | LocationError) -> None:
        self.queue: asyncio.Queue[Position | LocationError | None] = asyncio.Queue()
        for item in items:
            self.queue.put_nowait(item)

    async def current_position(self) -> Position:
        item = await self.queue.get()
        if isinstance(item, LocationError):
            raise item
        assert item is not None
        return item

    async def watch_positions(self) -> AsyncIterator[Position]:
        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, LocationError):
                raise item
            yield item


async def _geocode(lat: float, lon: float) -> LocationData:
    return LocationData(lat=lat, lon=lon, city=f"city-{lat:g}", country="NL")


def _service(
    provider: object,
    clock: FakeClock,
    store: MemoryStore | None = None,
    *,
    geocoder: Callable[[float, float], Awaitable[LocationData]] = _geocode,
) -> LocationService:
    return LocationService(
        provider,  # type: ignore[arg-type]
        geocoder=geocoder,
        store=store,
        ttl_seconds=3600,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_current_location_without_provider_is_unsupported(clock: FakeClock) -> None:
    service = _service(None, clock)

    with pytest.raises(UnsupportedCapabilityError):
        await service.get_current_location()
    with pytest.raises(UnsupportedCapabilityError):
        service.watch(lambda _loc: None, lambda _err: None)


@pytest.mark.asyncio
async def test_current_location_is_geocoded_and_persisted(clock: FakeClock) -> None:
    store = MemoryStore()
    service = _service(FixedPositionProvider(Position(lat=52.0, lon=4.0)), clock, store)

    location = await service.get_current_location()

    assert location.city == "city-52"
    assert service.last_known_location == location
    stored = json.loads(store.values[(LOCATION_NAMESPACE, LAST_LOCATION_KEY)])
    assert stored["timestamp"] == clock.now
    assert stored["city"] == "city-52"


@pytest.mark.asyncio
async def test_provider_failure_surfaces_location_error(clock: FakeClock) -> None:
    service = _service(FixedPositionProvider(None), clock)

    with pytest.raises(LocationError) as exc_info:
        await service.get_current_location()
    assert exc_info.value.code == 2
    assert str(exc_info.value) == "Location information is unavailable"


def test_location_error_messages() -> None:
    assert location_error_message(1) == "Location access denied by user"
    assert location_error_message(3) == "Location request timed out"
    assert location_error_message(42) == "An unknown error occurred while retrieving location"


@pytest.mark.asyncio
async def test_stored_location_expires_after_ttl(clock: FakeClock) -> None:
    store = MemoryStore()
    service = _service(None, clock, store)
    await service.store_location(LocationData(lat=1.0, lon=2.0, city="A", country="B"))

    clock.advance(3599)
    loaded = await service.load_stored_location()
    assert loaded is not None
    assert loaded.city == "A"

    clock.advance(1)
    assert await service.load_stored_location() is None
    assert store.values == {}


@pytest.mark.asyncio
async def test_unreadable_stored_location_is_removed(clock: FakeClock) -> None:
    store = MemoryStore()
    store.values[(LOCATION_NAMESPACE, LAST_LOCATION_KEY)] = "{broken"
    service = _service(None, clock, store)

    assert await service.load_stored_location() is None
    assert store.values == {}


@pytest.mark.asyncio
async def test_watch_delivers_updates_in_order(clock: FakeClock) -> None:
    provider = ScriptedProvider(Position(lat=1.0, lon=0.0), Position(lat=2.0, lon=0.0))
    provider.queue.put_nowait(None)
    service = _service(provider, clock)
    updates: list[str] = []

    watch = service.watch(lambda loc: updates.append(loc.city), lambda _err: None)
    await watch.wait()

    assert updates == ["city-1", "city-2"]
    assert not watch.active
    assert service.last_known_location is not None
    assert service.last_known_location.city == "city-2"


@pytest.mark.asyncio
async def test_watch_error_is_reported_and_ends_watch(clock: FakeClock) -> None:
    provider = ScriptedProvider(LocationError("denied", code=1))
    service = _service(provider, clock)
    errors: list[LocationError] = []

    watch = service.watch(lambda _loc: None, errors.append)
    await watch.wait()

    assert [e.code for e in errors] == [1]
    assert not service.is_watching


@pytest.mark.asyncio
async def test_unexpected_watch_failure_is_reported_as_location_error(clock: FakeClock) -> None:
    class BrokenProvider(ScriptedProvider):
        async def watch_positions(self) -> AsyncIterator[Position]:
            raise NetworkError("provider backend unreachable")
            yield Position(lat=0.0, lon=0.0)

    service = _service(BrokenProvider(), clock)
    errors: list[LocationError] = []

    watch = service.watch(lambda _loc: None, errors.append)
    await watch.wait()

    assert len(errors) == 1
    assert errors[0].code == 0
    assert "provider backend unreachable" in str(errors[0])
    assert isinstance(errors[0].__cause__, NetworkError)
    assert not service.is_watching


@pytest.mark.asyncio
async def test_no_update_after_stop_even_mid_geocode(clock: FakeClock) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_geocode(lat: float, lon: float) -> LocationData:
        started.set()
        await release.wait()
        return await _geocode(lat, lon)

    provider = ScriptedProvider(Position(lat=1.0, lon=0.0))
    service = _service(provider, clock, geocoder=slow_geocode)
    updates: list[LocationData] = []

    watch = service.watch(updates.append, lambda _err: None)
    await started.wait()
    service.stop_watching()
    release.set()
    await watch.wait()

    assert updates == []
    assert not watch.active
    assert not service.is_watching


@pytest.mark.asyncio
async def test_new_watch_replaces_previous(clock: FakeClock) -> None:
    service = _service(ScriptedProvider(), clock)

    first = service.watch(lambda _loc: None, lambda _err: None)
    second = service.watch(lambda _loc: None, lambda _err: None)

    assert not first.active
    assert second.active
    assert service.is_watching
    service.stop_watching()
    await second.wait()


def test_distance_km() -> None:
    assert LocationService.distance_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, rel=1e-3)
