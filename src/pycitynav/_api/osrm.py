"""Point-to-point routing via OSRM.

Endpoint:
  - GET /route/v1/driving/{lon},{lat};{lon},{lat}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pycitynav._transport import Transport, decode_json
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import DecodeError, NetworkError, NoResultError
from pycitynav.models.route import Coordinate, RouteResult, RouteStep
from pycitynav.normalize import safe_float

_logger = logging.getLogger(__name__)

_ROUTE_PARAMS: dict[str, str] = {
    "overview": "full",
    "geometries": "geojson",
    "steps": "true",
}


def build_route_url(config: CityNavConfig, origin: Coordinate, destination: Coordinate) -> str:
    base = config.osrm_url.rstrip("/")
    return f"{base}/route/v1/driving/{origin.lon},{origin.lat};{destination.lon},{destination.lat}"


def _parse_steps(route: Mapping[str, Any]) -> list[RouteStep]:
    steps: list[RouteStep] = []
    legs = route.get("legs")
    if not isinstance(legs, list):
        return steps
    for leg in legs:
        raw_steps = leg.get("steps") if isinstance(leg, Mapping) else None
        if not isinstance(raw_steps, list):
            continue
        for step in raw_steps:
            if not isinstance(step, Mapping):
                continue
            maneuver = step.get("maneuver")
            label = ""
            if isinstance(maneuver, Mapping):
                label = str(maneuver.get("instruction") or maneuver.get("type") or "")
            steps.append(
                RouteStep(
                    distance=safe_float(step.get("distance")) or 0.0,
                    duration=safe_float(step.get("duration")) or 0.0,
                    name=str(step.get("name") or ""),
                    maneuver=label,
                )
            )
    return steps


def _parse_geometry(route: Mapping[str, Any]) -> list[tuple[float, float]]:
    geometry = route.get("geometry")
    raw = geometry.get("coordinates") if isinstance(geometry, Mapping) else None
    if not isinstance(raw, list):
        return []
    coords: list[tuple[float, float]] = []
    for pair in raw:
        if (
            isinstance(pair, list)
            and len(pair) >= 2
            and isinstance(pair[0], (int, float))
            and isinstance(pair[1], (int, float))
        ):
            # GeoJSON is [lon, lat]; routes are exposed as (lat, lon).
            coords.append((float(pair[1]), float(pair[0])))
    return coords


def parse_route_response(payload: Any) -> RouteResult:
    """Take the first route of an OSRM response.

    Raises
    ------
    NoResultError
        If the response has no routes.
    DecodeError
        If the response is not a JSON object.
    """
    if not isinstance(payload, Mapping):
        raise DecodeError("OSRM response is not a JSON object")
    routes = payload.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], Mapping):
        raise NoResultError("No route found")
    route = routes[0]
    return RouteResult(
        geometry=tuple(_parse_geometry(route)),
        distance=safe_float(route.get("distance")) or 0.0,
        duration=safe_float(route.get("duration")) or 0.0,
        steps=tuple(_parse_steps(route)),
    )


async def fetch_route(
    transport: Transport,
    config: CityNavConfig,
    origin: Coordinate,
    destination: Coordinate,
) -> RouteResult:
    """Fetch a driving route between two coordinates."""
    url = build_route_url(config, origin, destination)
    try:
        text = await transport.get_text(url, params=_ROUTE_PARAMS)
    except NetworkError as exc:
        if exc.status_code is None:
            raise
        body = exc.body or f"status {exc.status_code}"
        raise NetworkError(
            f"Routing error {exc.status_code}: {body}",
            status_code=exc.status_code,
            url=exc.url,
            body=exc.body,
        ) from exc

    result = parse_route_response(decode_json(text, url=url))
    _logger.debug(
        "OSRM route distance=%.0fm duration=%.0fs steps=%d",
        result.distance,
        result.duration,
        len(result.steps),
    )
    return result
