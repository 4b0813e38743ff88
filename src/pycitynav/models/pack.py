"""Offline pack manifest models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import Field, field_validator, model_validator

from pycitynav.models._base import CityNavBaseModel, ensure_utc


class ContentEncoding(StrEnum):
    GZIP = "gzip"
    IDENTITY = "identity"


class PackManifest(CityNavBaseModel):
    """Metadata describing a pack's coverage, categories and size.

    Parameters
    ----------
    id : str
        Caller-assigned unique identifier, shared with the pack blob.
    bbox : tuple of float
        ``(min_lon, min_lat, max_lon, max_lat)``.
    center : tuple of float
        ``(lon, lat)`` of the coverage center.
    radius_meters : float
        Coverage radius around ``center``.
    categories : list of str
        POI categories included in the pack.
    created_at : datetime
        UTC creation time.
    size_bytes : int
        Uncompressed payload size as reported by the creator.
    item_count : int
        Number of records in the payload.
    compressed_bytes : int or None
        Stored size when the payload is compressed.
    content_encoding : ContentEncoding
        ``gzip`` or ``identity``.
    """

    id: str
    bbox: tuple[float, float, float, float]
    center: tuple[float, float]
    radius_meters: float = Field(ge=0)
    categories: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    size_bytes: int = Field(ge=0)
    item_count: int = Field(default=0, ge=0)
    compressed_bytes: int | None = Field(default=None, ge=0)
    content_encoding: ContentEncoding = ContentEncoding.IDENTITY

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        pack_id = value.strip()
        if not pack_id:
            raise ValueError("id must be non-empty")
        return pack_id

    @field_validator("categories")
    @classmethod
    def _dedupe_categories(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(c for c in value if c))

    @field_validator("created_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_bbox(self) -> PackManifest:
        min_lon, min_lat, max_lon, max_lat = self.bbox
        if min_lon > max_lon or min_lat > max_lat:
            raise ValueError(f"bbox is inverted: {self.bbox}")
        return self

    @property
    def is_gzip(self) -> bool:
        return self.content_encoding == ContentEncoding.GZIP

    @property
    def center_lat(self) -> float:
        return self.center[1]

    @property
    def center_lon(self) -> float:
        return self.center[0]

    def bbox_contains(self, lat: float, lon: float) -> bool:
        """Return ``True`` when the point lies inside the bounding box (edges included)."""
        min_lon, min_lat, max_lon, max_lat = self.bbox
        return min_lon <= lon <= max_lon and min_lat <= lat <= max_lat


class PackSizeEstimate(CityNavBaseModel):
    """Metadata-derived storage estimate; trusts each manifest's ``size_bytes``."""

    total_bytes: int
    count: int
