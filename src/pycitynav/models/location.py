"""Location models."""

from __future__ import annotations

from pycitynav.models._base import CityNavBaseModel


class Position(CityNavBaseModel):
    """A raw fix produced by a geolocation provider."""

    lat: float
    lon: float
    accuracy: float | None = None
    timestamp: float | None = None


class LocationData(CityNavBaseModel):
    """A position enriched with best-effort address fields.

    ``timestamp`` is set (epoch seconds) when the location is persisted.
    """

    lat: float
    lon: float
    city: str
    country: str
    state: str | None = None
    district: str | None = None
    address: str | None = None
    timestamp: float | None = None
