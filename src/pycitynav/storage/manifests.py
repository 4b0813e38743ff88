"""Manifest store: structured pack metadata keyed by pack id."""

from __future__ import annotations

import json
import sqlite3

from pydantic import ValidationError

from pycitynav.exceptions import DecodeError, StorageError
from pycitynav.models.pack import PackManifest


class ManifestStore:
    """Reads and writes the ``manifests`` table on a caller-owned connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def put(self, manifest: PackManifest) -> None:
        try:
            record = json.dumps(manifest.to_record(), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Manifest {manifest.id} could not be serialized: {exc}") from exc

        query = """
        INSERT INTO manifests (id, record)
        VALUES (?, ?)
        ON CONFLICT(id) DO UPDATE SET record=excluded.record
        """
        self._conn.execute(query, (manifest.id, record))

    def get(self, pack_id: str) -> PackManifest | None:
        row = self._conn.execute("SELECT id, record FROM manifests WHERE id = ?", (pack_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_manifest(row)

    def list(self) -> list[PackManifest]:
        rows = self._conn.execute("SELECT id, record FROM manifests").fetchall()
        return [self._row_to_manifest(row) for row in rows]

    def delete(self, pack_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM manifests WHERE id = ?", (pack_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_manifest(row: tuple[str, str]) -> PackManifest:
        pack_id, record = row
        try:
            return PackManifest.model_validate(json.loads(record))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise DecodeError(f"Stored manifest {pack_id} is unreadable: {exc}") from exc
