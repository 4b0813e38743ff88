"""SQLite storage engine shared by the pack stores and the keyed string store."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path

from pycitynav.exceptions import StorageError

_logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS manifests (
        id TEXT PRIMARY KEY,
        record TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS data (
        id TEXT PRIMARY KEY,
        payload BLOB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv (
        namespace TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        updated_at REAL NOT NULL,
        PRIMARY KEY (namespace, key)
    )
    """,
)


class PackDatabase:
    """Owns the database file and hands out transactional connections.

    Every call to :meth:`transaction` opens a fresh connection, so it is
    safe to use from worker threads (``asyncio.to_thread``). The block
    either commits as a whole or rolls back as a whole.
    """

    def __init__(self, db_path: str | Path, *, busy_timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout
        self._init_schema()

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a single transaction.

        With ``immediate=True`` the write lock is taken up front
        (``BEGIN IMMEDIATE``), so reads made inside the block cannot be
        invalidated by another writer before the commit.

        ``sqlite3.Error`` raised anywhere inside the block is re-raised as
        :class:`StorageError` after the rollback.
        """
        try:
            with closing(sqlite3.connect(self.db_path, timeout=self._busy_timeout)) as conn:
                with conn:
                    if immediate:
                        conn.execute("BEGIN IMMEDIATE")
                    yield conn
        except sqlite3.Error as exc:
            _logger.debug("sqlite transaction failed path=%s", self.db_path, exc_info=True)
            raise StorageError(f"Storage operation failed: {exc}") from exc

    def _init_schema(self) -> None:
        with self.transaction() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
