"""Reverse geocoding via Nominatim.

Endpoint:
  - GET /reverse?format=json&lat=..&lon=..&zoom=10&addressdetails=1

Reverse geocoding is best effort: any failure yields a placeholder
location instead of an error.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pycitynav._transport import Transport, decode_json
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import CityNavError
from pycitynav.models.location import LocationData
from pycitynav.normalize import safe_str

_logger = logging.getLogger(__name__)


def fallback_location(lat: float, lon: float) -> LocationData:
    """Placeholder used when no address data is available."""
    return LocationData(
        lat=lat,
        lon=lon,
        city="Current Location",
        country="Unknown",
        address=f"{lat:.4f}, {lon:.4f}",
    )


def _first(address: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = safe_str(address.get(key))
        if value:
            return value
    return None


def parse_reverse_geocode(lat: float, lon: float, payload: Any) -> LocationData:
    """Build a location from a Nominatim response.

    Responses without an ``address`` object (e.g. ``{"error": "Unable
    to geocode"}``) produce :func:`fallback_location`.
    """
    if not isinstance(payload, Mapping):
        return fallback_location(lat, lon)
    address = payload.get("address")
    if not isinstance(address, Mapping) or not address:
        return fallback_location(lat, lon)

    return LocationData(
        lat=lat,
        lon=lon,
        city=_first(address, "city", "town", "village", "municipality") or "Unknown City",
        country=_first(address, "country") or "Unknown Country",
        state=_first(address, "state", "province"),
        district=_first(address, "district", "county"),
        address=safe_str(payload.get("display_name")),
    )


async def reverse_geocode(
    transport: Transport,
    config: CityNavConfig,
    lat: float,
    lon: float,
    *,
    logger: logging.Logger | None = None,
) -> LocationData:
    """Resolve coordinates to address fields. Never raises for lookup failures."""
    log = logger or _logger
    url = f"{config.nominatim_url.rstrip('/')}/reverse"
    params = {
        "format": "json",
        "lat": str(lat),
        "lon": str(lon),
        "zoom": "10",
        "addressdetails": "1",
    }
    try:
        text = await transport.get_text(url, params=params)
        payload = decode_json(text, url=url)
    except CityNavError as exc:
        log.debug("Reverse geocoding failed lat=%s lon=%s: %s", lat, lon, exc)
        return fallback_location(lat, lon)
    return parse_reverse_geocode(lat, lon, payload)
