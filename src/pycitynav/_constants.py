"""Internal constants shared across the library."""

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
OSRM_URL = "https://router.project-osrm.org"
NOMINATIM_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "pycitynav/0.1 (+https://github.com/citynav)"

DEFAULT_DB_FILENAME = "citynav-packs.sqlite3"

# ------------------------------------------------------------------
# Cache namespaces and keys
# ------------------------------------------------------------------

NEARBY_POIS_NAMESPACE = "nearby_pois"
LOCATION_NAMESPACE = "location"
LAST_LOCATION_KEY = "citynav_last_location"

NEARBY_SLOT = "nearby"
ROUTE_SLOT = "route"

# ------------------------------------------------------------------
# Pack coverage
# ------------------------------------------------------------------

# A pack is considered to cover a point slightly beyond its nominal radius.
PACK_COVERAGE_SLACK = 1.1
# Half-width, in degrees, of the bbox written for auto-created POI packs.
PACK_BBOX_HALF_WIDTH_DEG = 0.01

EARTH_RADIUS_KM = 6371.0

# Geolocation error codes (browser convention).
LOCATION_ERROR_MESSAGES: dict[int, str] = {
    1: "Location access denied by user",
    2: "Location information is unavailable",
    3: "Location request timed out",
}
UNKNOWN_LOCATION_ERROR = "An unknown error occurred while retrieving location"
