"""Record models returned by pycitynav."""

from pycitynav.models.location import LocationData, Position
from pycitynav.models.pack import ContentEncoding, PackManifest, PackSizeEstimate
from pycitynav.models.poi import Poi
from pycitynav.models.route import Coordinate, RouteResult, RouteStep

__all__ = [
    "ContentEncoding",
    "Coordinate",
    "LocationData",
    "PackManifest",
    "PackSizeEstimate",
    "Poi",
    "Position",
    "RouteResult",
    "RouteStep",
]
