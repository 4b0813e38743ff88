"""Storage layer: one SQLite file holding packs and persisted caches."""

from .blobs import BlobStore
from .database import PackDatabase
from .kv import KeyValueStore
from .manifests import ManifestStore

__all__ = ["BlobStore", "KeyValueStore", "ManifestStore", "PackDatabase"]
