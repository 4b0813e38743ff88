"""Offline pack manager.

A pack is a manifest plus an opaque blob sharing one id. The manager
is the only writer of both stores and always touches them inside a
single SQLite transaction, so a manifest never exists without its blob
or the other way round. Operations on the same pack id are serialized
with a per-id :class:`asyncio.Lock`; different ids interleave freely.
"""

from __future__ import annotations

import asyncio
import contextlib
import gzip
import json
import logging
import zlib
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import UTC, datetime

from pydantic import ValidationError

from pycitynav._constants import PACK_BBOX_HALF_WIDTH_DEG, PACK_COVERAGE_SLACK
from pycitynav.exceptions import DecodeError, StorageError
from pycitynav.geo import haversine_m, pack_id_for
from pycitynav.models.pack import ContentEncoding, PackManifest, PackSizeEstimate
from pycitynav.models.poi import Poi
from pycitynav.storage.blobs import BlobStore
from pycitynav.storage.database import PackDatabase
from pycitynav.storage.manifests import ManifestStore

_logger = logging.getLogger(__name__)

PackData = bytes | bytearray | memoryview | str


def _to_bytes(data: PackData) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def gunzip_text(blob: bytes) -> str:
    """Decompress a gzip blob and decode it as UTF-8.

    Raises
    ------
    DecodeError
        If the blob is not valid gzip or not valid UTF-8.
    """
    try:
        return gzip.decompress(blob).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
        raise DecodeError(f"gzip payload could not be decoded: {exc}") from exc


def decode_pack_text(
    pack_id: str,
    manifest: PackManifest | None,
    blob: bytes,
    *,
    logger: logging.Logger | None = None,
) -> str:
    """Turn a stored blob into text according to its manifest.

    A blob marked ``gzip`` that fails to decompress is read as plain
    text instead. This is a best-effort fallback that keeps partially
    valid packs usable: the failure is logged, and bytes that are not
    valid UTF-8 become U+FFFD rather than being dropped.
    """
    if manifest is not None and manifest.is_gzip:
        try:
            return gunzip_text(blob)
        except DecodeError as exc:
            (logger or _logger).warning("Pack %s: %s; reading as plain text", pack_id, exc)
    return blob.decode("utf-8", errors="replace")


def encode_ndjson(pois: Iterable[Poi]) -> str:
    return "".join(json.dumps(poi.to_record(), ensure_ascii=False) + "\n" for poi in pois)


def parse_ndjson(text: str) -> list[Poi]:
    """Parse newline-delimited POI records, skipping blank lines."""
    pois: list[Poi] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            pois.append(Poi.model_validate(json.loads(line)))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise DecodeError(f"Malformed POI record on line {line_no}: {exc}") from exc
    return pois


class PackManager:
    """Create, read and delete offline packs.

    Usage::

        manager = PackManager(PackDatabase("packs.sqlite3"))
        await manager.create_pack(manifest, ndjson_text)
        text = await manager.get_pack_text(manifest.id)
    """

    def __init__(
        self,
        database: PackDatabase,
        *,
        max_storage_bytes: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_storage_bytes is not None and max_storage_bytes < 0:
            raise ValueError("max_storage_bytes must be >= 0")
        self._db = database
        self._max_storage_bytes = max_storage_bytes
        self._logger = logger or _logger
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _locked(self, pack_id: str) -> AsyncIterator[None]:
        # Entries live only while some caller holds or waits on the lock.
        lock = self._locks.setdefault(pack_id, asyncio.Lock())
        self._lock_users[pack_id] = self._lock_users.get(pack_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[pack_id] -= 1
            if not self._lock_users[pack_id]:
                del self._lock_users[pack_id]
                del self._locks[pack_id]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_pack(self, manifest: PackManifest, data: PackData) -> None:
        """Store a manifest and its payload atomically.

        An existing pack with the same id is replaced as a whole.

        Raises
        ------
        StorageError
            On quota exhaustion, manifest serialization failure or any
            storage failure. Nothing is written in that case.
        """
        payload = _to_bytes(data)
        async with self._locked(manifest.id):
            await asyncio.to_thread(self._create_sync, manifest, payload)
        self._logger.info(
            "Created pack %s items=%d stored=%dB encoding=%s",
            manifest.id,
            manifest.item_count,
            len(payload),
            manifest.content_encoding,
        )

    async def delete_pack(self, pack_id: str) -> bool:
        """Remove manifest and blob together.

        Returns ``True`` if anything was deleted, ``False`` if the id
        was unknown.
        """
        async with self._locked(pack_id):
            deleted = await asyncio.to_thread(self._delete_sync, pack_id)
        if deleted:
            self._logger.info("Deleted pack %s", pack_id)
        return deleted

    async def create_poi_pack(
        self,
        pois: Sequence[Poi],
        *,
        center_lat: float,
        center_lon: float,
        radius_meters: float,
        categories: Iterable[str] | None = None,
        compress: bool = True,
    ) -> PackManifest:
        """Package POIs as NDJSON under a deterministic id.

        When a pack for the same center and radius already exists it is
        returned unchanged.
        """
        if not pois:
            raise ValueError("cannot create a pack without POIs")

        pack_id = pack_id_for(center_lat, center_lon, radius_meters)
        async with self._locked(pack_id):
            existing = await asyncio.to_thread(self._get_manifest_sync, pack_id)
            if existing is not None:
                self._logger.debug("Pack %s already exists", pack_id)
                return existing

            encoded = encode_ndjson(pois).encode("utf-8")
            if compress:
                payload = gzip.compress(encoded)
                encoding = ContentEncoding.GZIP
                compressed_bytes: int | None = len(payload)
            else:
                payload = encoded
                encoding = ContentEncoding.IDENTITY
                compressed_bytes = None

            manifest = PackManifest(
                id=pack_id,
                bbox=(
                    center_lon - PACK_BBOX_HALF_WIDTH_DEG,
                    center_lat - PACK_BBOX_HALF_WIDTH_DEG,
                    center_lon + PACK_BBOX_HALF_WIDTH_DEG,
                    center_lat + PACK_BBOX_HALF_WIDTH_DEG,
                ),
                center=(center_lon, center_lat),
                radius_meters=radius_meters,
                categories=list(categories) if categories is not None else [p.category for p in pois],
                created_at=datetime.now(UTC),
                size_bytes=len(encoded),
                item_count=len(pois),
                compressed_bytes=compressed_bytes,
                content_encoding=encoding,
            )
            await asyncio.to_thread(self._create_sync, manifest, payload)

        self._logger.info("Created pack %s from %d POIs", pack_id, len(pois))
        return manifest

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_packs(self) -> list[PackManifest]:
        """All stored manifests. Order is unspecified."""
        return await asyncio.to_thread(self._list_sync)

    async def get_pack_manifest(self, pack_id: str) -> PackManifest | None:
        async with self._locked(pack_id):
            return await asyncio.to_thread(self._get_manifest_sync, pack_id)

    async def get_pack_data(self, pack_id: str) -> bytes | None:
        async with self._locked(pack_id):
            _, blob = await asyncio.to_thread(self._read_sync, pack_id)
        return blob

    async def get_pack_text(self, pack_id: str) -> str | None:
        """Pack payload as text, gunzipped when the manifest says ``gzip``."""
        async with self._locked(pack_id):
            manifest, blob = await asyncio.to_thread(self._read_sync, pack_id)
        if blob is None:
            return None
        return await asyncio.to_thread(decode_pack_text, pack_id, manifest, blob, logger=self._logger)

    async def read_pack_as_text(self, pack_id: str) -> str | None:
        """Raw payload decoded as UTF-8, without decompression."""
        blob = await self.get_pack_data(pack_id)
        if blob is None:
            return None
        return blob.decode("utf-8", errors="replace")

    async def load_pack_pois(self, pack_id: str) -> list[Poi] | None:
        """Parse a pack's NDJSON payload into POIs; ``None`` if the pack is absent."""
        text = await self.get_pack_text(pack_id)
        if text is None:
            return None
        return parse_ndjson(text)

    async def estimate_size(self) -> PackSizeEstimate:
        """Sum of manifest ``size_bytes`` and pack count.

        Derived from metadata only; it trusts the sizes supplied at
        creation and can drift from actual on-disk usage.
        """
        manifests = await self.list_packs()
        return PackSizeEstimate(
            total_bytes=sum(m.size_bytes for m in manifests),
            count=len(manifests),
        )

    async def find_covering_pack(self, lat: float, lon: float) -> PackManifest | None:
        """First pack whose coverage includes the point.

        A pack covers a point inside its bbox or within
        ``radius_meters * 1.1`` of its center. Packs are scanned
        linearly; there is no spatial index.
        """
        for manifest in await self.list_packs():
            if manifest.bbox_contains(lat, lon):
                return manifest
            distance = haversine_m(lat, lon, manifest.center_lat, manifest.center_lon)
            if distance <= manifest.radius_meters * PACK_COVERAGE_SLACK:
                return manifest
        return None

    # ------------------------------------------------------------------
    # Worker-thread bodies
    # ------------------------------------------------------------------

    def _create_sync(self, manifest: PackManifest, payload: bytes) -> None:
        with self._db.transaction(immediate=self._max_storage_bytes is not None) as conn:
            blobs = BlobStore(conn)
            if self._max_storage_bytes is not None:
                used = blobs.total_bytes(exclude_id=manifest.id)
                if used + len(payload) > self._max_storage_bytes:
                    raise StorageError(
                        f"Storage quota exceeded: {used + len(payload)}B needed, {self._max_storage_bytes}B allowed"
                    )
            ManifestStore(conn).put(manifest)
            blobs.put(manifest.id, payload)

    def _delete_sync(self, pack_id: str) -> bool:
        with self._db.transaction() as conn:
            manifest_deleted = ManifestStore(conn).delete(pack_id)
            blob_deleted = BlobStore(conn).delete(pack_id)
        return manifest_deleted or blob_deleted

    def _get_manifest_sync(self, pack_id: str) -> PackManifest | None:
        with self._db.transaction() as conn:
            return ManifestStore(conn).get(pack_id)

    def _read_sync(self, pack_id: str) -> tuple[PackManifest | None, bytes | None]:
        with self._db.transaction() as conn:
            return ManifestStore(conn).get(pack_id), BlobStore(conn).get(pack_id)

    def _list_sync(self) -> list[PackManifest]:
        with self._db.transaction() as conn:
            return ManifestStore(conn).list()
