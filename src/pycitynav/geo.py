"""Geographic helpers and cache-key derivation."""

from __future__ import annotations

import math

from pycitynav._constants import EARTH_RADIUS_KM


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _plain_number(value: float) -> str:
    """Shortest round-tripping text for a coordinate (``52.0`` -> ``"52"``)."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def poi_cache_key(lat: float, lon: float, radius: float) -> str:
    """Cache key for a nearby-POI search.

    Coordinates are rounded to 5 decimals (~1 m) so near-duplicate
    requests share one slot.
    """
    return f"nearby_pois_{lat:.5f}_{lon:.5f}_{round_half_up(radius)}"


def route_cache_key(from_lat: float, from_lon: float, to_lat: float, to_lon: float) -> str:
    """Cache key for an ordered origin/destination pair at full precision."""
    return f"{_plain_number(from_lat)},{_plain_number(from_lon)}:{_plain_number(to_lat)},{_plain_number(to_lon)}"


def pack_id_for(lat: float, lon: float, radius: float) -> str:
    """Deterministic pack id for an auto-created POI pack."""
    return f"pack_{lat:.5f}_{lon:.5f}_{round_half_up(radius)}"
