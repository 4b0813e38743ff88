"""Routing models."""

from __future__ import annotations

from pydantic import Field

from pycitynav.models._base import CityNavBaseModel


class Coordinate(CityNavBaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class RouteStep(CityNavBaseModel):
    distance: float = 0.0
    duration: float = 0.0
    name: str = ""
    maneuver: str = ""


class RouteResult(CityNavBaseModel):
    """A point-to-point route.

    ``geometry`` is an ordered sequence of ``(lat, lon)`` pairs.
    ``distance`` is in meters, ``duration`` in seconds.
    """

    geometry: tuple[tuple[float, float], ...] = ()
    distance: float = 0.0
    duration: float = 0.0
    steps: tuple[RouteStep, ...] = ()
