"""pycitynav - Offline pack storage and cached map lookups for CityNav."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycitynav")
except PackageNotFoundError:
    __version__ = "0+local"
from pycitynav.cache import CacheEntry, CacheLookup, CacheSource, KeyedCache
from pycitynav.client import CityNavClient
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import (
    CityNavConfigError,
    CityNavError,
    DecodeError,
    LocationError,
    NetworkError,
    NoResultError,
    RequestCancelledError,
    StorageError,
    UnsupportedCapabilityError,
)
from pycitynav.location import FixedPositionProvider, GeolocationProvider, LocationService, LocationWatch
from pycitynav.models import (
    ContentEncoding,
    Coordinate,
    LocationData,
    PackManifest,
    PackSizeEstimate,
    Poi,
    Position,
    RouteResult,
    RouteStep,
)
from pycitynav.packs import PackManager

__all__ = [
    "__version__",
    "CacheEntry",
    "CacheLookup",
    "CacheSource",
    "CityNavClient",
    "CityNavConfig",
    "CityNavConfigError",
    "CityNavError",
    "ContentEncoding",
    "Coordinate",
    "DecodeError",
    "FixedPositionProvider",
    "GeolocationProvider",
    "KeyedCache",
    "LocationData",
    "LocationError",
    "LocationService",
    "LocationWatch",
    "NetworkError",
    "NoResultError",
    "PackManager",
    "PackManifest",
    "PackSizeEstimate",
    "Poi",
    "Position",
    "RequestCancelledError",
    "RouteResult",
    "RouteStep",
    "StorageError",
    "UnsupportedCapabilityError",
]
