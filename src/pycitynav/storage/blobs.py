"""Blob store: opaque pack payloads keyed by pack id."""

from __future__ import annotations

import sqlite3


class BlobStore:
    """Reads and writes the ``data`` table on a caller-owned connection.

    Only :class:`~pycitynav.packs.PackManager` constructs this, inside the
    same transaction as the matching :class:`ManifestStore` call.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def put(self, pack_id: str, payload: bytes) -> None:
        query = """
        INSERT INTO data (id, payload)
        VALUES (?, ?)
        ON CONFLICT(id) DO UPDATE SET payload=excluded.payload
        """
        self._conn.execute(query, (pack_id, sqlite3.Binary(payload)))

    def get(self, pack_id: str) -> bytes | None:
        row = self._conn.execute("SELECT payload FROM data WHERE id = ?", (pack_id,)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def delete(self, pack_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM data WHERE id = ?", (pack_id,))
        return cursor.rowcount > 0

    def total_bytes(self, *, exclude_id: str | None = None) -> int:
        """Sum of stored payload lengths, optionally ignoring one id."""
        if exclude_id is None:
            row = self._conn.execute("SELECT COALESCE(SUM(LENGTH(payload)), 0) FROM data").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COALESCE(SUM(LENGTH(payload)), 0) FROM data WHERE id != ?",
                (exclude_id,),
            ).fetchone()
        return int(row[0])
