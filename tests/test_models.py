from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pycitynav.geo import haversine_km, pack_id_for, poi_cache_key, route_cache_key
from pycitynav.models.pack import ContentEncoding, PackManifest
from pycitynav.models.route import Coordinate
from pycitynav.normalize import safe_float, safe_str


def _manifest(**overrides: object) -> PackManifest:
    fields: dict[str, object] = {
        "id": "p1",
        "bbox": (4.8, 52.3, 4.9, 52.4),
        "center": (4.85, 52.35),
        "radius_meters": 1000,
        "size_bytes": 10,
    }
    fields.update(overrides)
    return PackManifest(**fields)


def test_manifest_record_uses_camel_case() -> None:
    record = _manifest(content_encoding=ContentEncoding.GZIP, compressed_bytes=4).to_record()

    assert record["radiusMeters"] == 1000
    assert record["sizeBytes"] == 10
    assert record["compressedBytes"] == 4
    assert record["contentEncoding"] == "gzip"
    assert "createdAt" in record


def test_manifest_accepts_camel_case_input() -> None:
    manifest = PackManifest.model_validate(
        {
            "id": "p1",
            "bbox": [4.8, 52.3, 4.9, 52.4],
            "center": [4.85, 52.35],
            "radiusMeters": 500,
            "sizeBytes": 3,
            "itemCount": 2,
            "createdAt": "2026-03-01T10:00:00",
        }
    )

    assert manifest.item_count == 2
    assert manifest.center_lat == 52.35
    # Naive timestamps are read as UTC.
    assert manifest.created_at == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
    assert manifest.content_encoding == ContentEncoding.IDENTITY


def test_manifest_dedupes_categories() -> None:
    assert _manifest(categories=["museum", "museum", "", "bank"]).categories == ["museum", "bank"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"id": "   "},
        {"bbox": (4.9, 52.3, 4.8, 52.4)},
        {"size_bytes": -1},
        {"radius_meters": -5},
    ],
)
def test_manifest_rejects_invalid_fields(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        _manifest(**overrides)


def test_manifest_is_immutable() -> None:
    manifest = _manifest()

    with pytest.raises(ValidationError):
        manifest.size_bytes = 99  # type: ignore[misc]


def test_bbox_contains_includes_edges() -> None:
    manifest = _manifest()

    assert manifest.bbox_contains(52.3, 4.8)
    assert manifest.bbox_contains(52.35, 4.85)
    assert not manifest.bbox_contains(52.41, 4.85)


def test_coordinate_range_is_validated() -> None:
    with pytest.raises(ValidationError):
        Coordinate(lat=91, lon=0)


def test_poi_cache_key_rounds_to_five_decimals() -> None:
    assert poi_cache_key(52.3700012, 4.89, 999.5) == "nearby_pois_52.37000_4.89000_1000"
    assert poi_cache_key(52.3700012, 4.89, 1000) == poi_cache_key(52.370004, 4.890001, 1000.4)


def test_route_cache_key_is_ordered_and_exact() -> None:
    forward = route_cache_key(52.0, 4.5, 52.1, 4.6)

    assert forward == "52,4.5:52.1,4.6"
    assert forward != route_cache_key(52.1, 4.6, 52.0, 4.5)
    assert route_cache_key(52.000001, 4.5, 52.1, 4.6) != forward


def test_pack_id_is_deterministic() -> None:
    assert pack_id_for(52.37, 4.89, 1600) == "pack_52.37000_4.89000_1600"


def test_haversine_one_degree_of_latitude() -> None:
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, rel=1e-3)
    assert haversine_km(52.37, 4.89, 52.37, 4.89) == 0.0


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), ("", None), (True, None), ("1.5", 1.5), (2, 2.0), (float("nan"), None), ("abc", None)],
)
def test_safe_float(value: object, expected: float | None) -> None:
    assert safe_float(value) == expected


def test_safe_str_strips_and_blanks_to_none() -> None:
    assert safe_str("  Dam  ") == "Dam"
    assert safe_str("   ") is None
    assert safe_str(None) is None
