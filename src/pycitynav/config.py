"""Client configuration for pycitynav."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pycitynav._constants import (
    DEFAULT_DB_FILENAME,
    NOMINATIM_URL,
    OSRM_URL,
    OVERPASS_URL,
    USER_AGENT,
)
from pycitynav.exceptions import CityNavConfigError


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise CityNavConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class CityNavConfig:
    """Client configuration.

    Parameters
    ----------
    db_path : Path
        SQLite file holding packs and persisted caches.
    overpass_url : str
        Overpass interpreter endpoint used for nearby POI search.
    osrm_url : str
        OSRM server base URL.
    nominatim_url : str
        Nominatim server base URL used for reverse geocoding.
    user_agent : str
        ``User-Agent`` header sent with every request. Nominatim's usage
        policy requires an identifying value.
    request_timeout : float
        Total timeout in seconds for a single network fetch.
    poi_ttl_minutes : float
        Freshness window for cached nearby-POI results.
    poi_cache_max_entries : int
        LRU bound for the in-memory nearby-POI cache.
    route_cache_max_entries : int
        LRU bound for the in-memory route cache.
    location_ttl_hours : float
        Freshness window for the persisted last-known location.
    default_radius_meters : int
        Search radius used when callers do not pass one.
    pack_radius_meters : int
        Coverage radius written into auto-created POI packs.
    max_storage_bytes : int or None
        Upper bound on stored pack blob bytes. ``None`` disables the quota.
    """

    db_path: Path = Path(DEFAULT_DB_FILENAME)
    overpass_url: str = OVERPASS_URL
    osrm_url: str = OSRM_URL
    nominatim_url: str = NOMINATIM_URL
    user_agent: str = USER_AGENT
    request_timeout: float = 25.0
    poi_ttl_minutes: float = 15.0
    poi_cache_max_entries: int = 256
    route_cache_max_entries: int = 128
    location_ttl_hours: float = 24.0
    default_radius_meters: int = 1000
    pack_radius_meters: int = 1600
    max_storage_bytes: int | None = None

    @property
    def poi_ttl_seconds(self) -> float:
        return self.poi_ttl_minutes * 60.0

    @property
    def location_ttl_seconds(self) -> float:
        return self.location_ttl_hours * 3600.0

    @classmethod
    def from_env(cls, **overrides: Any) -> CityNavConfig:
        """Create configuration from environment variables.

        Reads optional ``CITYNAV_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CityNavConfig
            Populated configuration.

        Raises
        ------
        CityNavConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "CITYNAV_OVERPASS_URL": "overpass_url",
            "CITYNAV_OSRM_URL": "osrm_url",
            "CITYNAV_NOMINATIM_URL": "nominatim_url",
            "CITYNAV_USER_AGENT": "user_agent",
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "CITYNAV_REQUEST_TIMEOUT": ("request_timeout", float),
            "CITYNAV_POI_TTL_MINUTES": ("poi_ttl_minutes", float),
            "CITYNAV_POI_CACHE_MAX_ENTRIES": ("poi_cache_max_entries", int),
            "CITYNAV_ROUTE_CACHE_MAX_ENTRIES": ("route_cache_max_entries", int),
            "CITYNAV_LOCATION_TTL_HOURS": ("location_ttl_hours", float),
            "CITYNAV_DEFAULT_RADIUS": ("default_radius_meters", int),
            "CITYNAV_PACK_RADIUS": ("pack_radius_meters", int),
            "CITYNAV_MAX_STORAGE_BYTES": ("max_storage_bytes", int),
        }

        config_kwargs: dict[str, Any] = {}

        db_env = env.get("CITYNAV_DB_PATH")
        if db_env:
            config_kwargs["db_path"] = Path(db_env).expanduser()

        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        config_kwargs.update(overrides)
        if "db_path" in config_kwargs:
            config_kwargs["db_path"] = Path(config_kwargs["db_path"])

        return cls(**config_kwargs)
