"""Point-of-interest model."""

from __future__ import annotations

from pydantic import Field

from pycitynav.models._base import CityNavBaseModel


class Poi(CityNavBaseModel):
    """A named geographic feature returned by a nearby search.

    ``id`` has the form ``"<osm type>/<osm id>"``, e.g. ``"node/42"``.
    """

    id: str
    lat: float
    lon: float
    name: str | None = None
    category: str = "unknown"
    tags: dict[str, str] = Field(default_factory=dict)
