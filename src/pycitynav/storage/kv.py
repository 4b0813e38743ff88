"""Namespaced keyed string storage for persisted caches."""

from __future__ import annotations

import asyncio
import time

from pycitynav.storage.database import PackDatabase


class KeyValueStore:
    """Async ``(namespace, key) -> text`` store on the ``kv`` table.

    Values are opaque strings; callers store JSON envelopes. All
    operations run in a worker thread.
    """

    def __init__(self, database: PackDatabase) -> None:
        self._db = database

    async def get(self, namespace: str, key: str) -> str | None:
        return await asyncio.to_thread(self._get_sync, namespace, key)

    async def set(self, namespace: str, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, namespace, key, value, time.time())

    async def delete(self, namespace: str, key: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, namespace, key)

    async def keys(self, namespace: str) -> list[str]:
        return await asyncio.to_thread(self._keys_sync, namespace)

    async def clear(self, namespace: str) -> int:
        return await asyncio.to_thread(self._clear_sync, namespace)

    async def prune(self, namespace: str, keep: int) -> int:
        """Drop all but the ``keep`` most recently written keys of a namespace."""
        if keep < 0:
            raise ValueError("keep must be >= 0")
        return await asyncio.to_thread(self._prune_sync, namespace, keep)

    def _get_sync(self, namespace: str, key: str) -> str | None:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT value FROM kv WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()
        return None if row is None else str(row[0])

    def _set_sync(self, namespace: str, key: str, value: str, updated_at: float) -> None:
        query = """
        INSERT INTO kv (namespace, key, value, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(namespace, key) DO UPDATE SET
            value=excluded.value,
            updated_at=excluded.updated_at
        """
        with self._db.transaction() as conn:
            conn.execute(query, (namespace, key, value, updated_at))

    def _delete_sync(self, namespace: str, key: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE namespace = ? AND key = ?", (namespace, key))
        return cursor.rowcount > 0

    def _keys_sync(self, namespace: str) -> list[str]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                "SELECT key FROM kv WHERE namespace = ? ORDER BY updated_at DESC, key ASC",
                (namespace,),
            ).fetchall()
        return [str(row[0]) for row in rows]

    def _clear_sync(self, namespace: str) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE namespace = ?", (namespace,))
        return cursor.rowcount

    def _prune_sync(self, namespace: str, keep: int) -> int:
        query = """
        DELETE FROM kv
        WHERE namespace = ?
          AND key NOT IN (
            SELECT key FROM kv
            WHERE namespace = ?
            ORDER BY updated_at DESC, key ASC
            LIMIT ?
          )
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(query, (namespace, namespace, keep))
        return cursor.rowcount
