"""Nearby POI search via the Overpass API.

Endpoint:
  - POST <overpass_url> with form field ``data=<query>``
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pycitynav._transport import Transport, decode_json
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import DecodeError, NetworkError
from pycitynav.models.poi import Poi
from pycitynav.normalize import safe_float

_logger = logging.getLogger(__name__)

_AMENITY = "hospital|clinic|bank|atm|restaurant|cafe|fast_food"
_TOURISM = "hotel|attraction|museum|monument|viewpoint|artwork|gallery"
_HISTORIC = "monument|memorial|castle|ruins|archaeological_site"

_FILTERS: tuple[str, ...] = (
    f'["amenity"~"{_AMENITY}"]',
    f'["tourism"~"{_TOURISM}"]',
    f'["historic"~"{_HISTORIC}"]',
    '["railway"="station"]',
    '["highway"="bus_stop"]',
)

_AMENITY_CATEGORIES: dict[str, str] = {
    "hospital": "hospital",
    "clinic": "clinic",
    "bank": "bank",
    "atm": "atm",
    "restaurant": "restaurant",
    "cafe": "restaurant",
    "fast_food": "restaurant",
}

_TOURISM_CATEGORIES: dict[str, str] = {
    "attraction": "tourist_attraction",
    "museum": "museum",
    "gallery": "museum",
    "monument": "monument",
    "artwork": "monument",
    "viewpoint": "viewpoint",
}

_HISTORIC_MONUMENTS = frozenset({"monument", "memorial", "castle", "ruins", "archaeological_site"})


def build_overpass_query(lat: float, lon: float, radius: float) -> str:
    """Overpass QL selecting every supported POI kind around a point."""
    around = f"(around:{radius:g},{lat},{lon})"
    lines = ["[out:json][timeout:25];", "("]
    for tag_filter in _FILTERS:
        for element in ("node", "way", "relation"):
            lines.append(f"  {element}{tag_filter}{around};")
    lines.extend([");", "out center qt;"])
    return "\n".join(lines) + "\n"


def detect_category(tags: Mapping[str, str]) -> str:
    """Map OSM tags to a POI category.

    Checked in priority order: health, finance, food, lodging,
    transport, tourism, historic. Unmapped features fall back to their
    raw amenity/tourism/historic value, then ``"unknown"``.
    """
    amenity = tags.get("amenity")
    tourism = tags.get("tourism")
    historic = tags.get("historic")

    if amenity in _AMENITY_CATEGORIES:
        return _AMENITY_CATEGORIES[amenity]
    if tourism == "hotel":
        return "hotel"
    if tags.get("railway") == "station":
        return "railway"
    if tags.get("highway") == "bus_stop":
        return "bus_stop"
    if tourism in _TOURISM_CATEGORIES:
        return _TOURISM_CATEGORIES[tourism]
    if historic in _HISTORIC_MONUMENTS:
        return "monument"

    return amenity or tourism or historic or "unknown"


def _element_point(element: Mapping[str, Any]) -> tuple[float | None, float | None]:
    if element.get("type") == "node":
        return safe_float(element.get("lat")), safe_float(element.get("lon"))
    center = element.get("center")
    if isinstance(center, Mapping):
        return safe_float(center.get("lat")), safe_float(center.get("lon"))
    return None, None


def parse_overpass_elements(payload: Any) -> list[Poi]:
    """Convert an Overpass JSON response into POI records.

    Elements without a usable point (no node coordinates and no
    ``center``) are dropped.
    """
    if not isinstance(payload, Mapping):
        raise DecodeError("Overpass response is not a JSON object")
    elements = payload.get("elements")
    if not isinstance(elements, list):
        return []

    pois: list[Poi] = []
    for element in elements:
        if not isinstance(element, Mapping):
            continue
        lat, lon = _element_point(element)
        if lat is None or lon is None:
            continue
        raw_tags = element.get("tags")
        tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, Mapping) else {}
        pois.append(
            Poi(
                id=f"{element.get('type')}/{element.get('id')}",
                lat=lat,
                lon=lon,
                name=tags.get("name") or tags.get("operator") or tags.get("brand") or None,
                category=detect_category(tags),
                tags=tags,
            )
        )
    return pois


async def fetch_nearby_pois(
    transport: Transport,
    config: CityNavConfig,
    lat: float,
    lon: float,
    radius: float,
) -> list[Poi]:
    """Run the nearby query and return normalized POIs.

    Raises
    ------
    NetworkError
        On transport failure or a non-success status.
    DecodeError
        If the response is not valid Overpass JSON.
    """
    query = build_overpass_query(lat, lon, radius)
    try:
        text = await transport.post_text(config.overpass_url, data={"data": query})
    except NetworkError as exc:
        if exc.status_code is None:
            raise
        raise NetworkError(
            f"Overpass error {exc.status_code}",
            status_code=exc.status_code,
            url=exc.url,
            body=exc.body,
        ) from exc

    pois = parse_overpass_elements(decode_json(text, url=config.overpass_url))
    _logger.debug("Overpass lat=%s lon=%s radius=%s pois=%d", lat, lon, radius, len(pois))
    return pois
