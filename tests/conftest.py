from __future__ import annotations

from pathlib import Path

import pytest

from pycitynav.storage.database import PackDatabase
from pycitynav.storage.kv import KeyValueStore


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "packs.sqlite3"


@pytest.fixture
def database(db_path: Path) -> PackDatabase:
    return PackDatabase(db_path)


@pytest.fixture
def kv_store(database: PackDatabase) -> KeyValueStore:
    return KeyValueStore(database)
