"""
Local persistence for fallback data.

Provides the key/value store adapters and the two structures kept in
them: the per-entity fallback mirror and the uploads map.

Example:
    >>> from resilient_entities.storage import FallbackMirror, MemoryKeyValueStore
    >>> mirror = FallbackMirror(MemoryKeyValueStore())
    >>> mirror.upsert("Material", {"name": "Copper"})["id"].startswith("tmp_")
    True
"""

from .kv import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    NullKeyValueStore,
    create_store,
)
from .mirror import FallbackMirror, Record, normalize_entity_name
from .uploads import UploadsMap

__all__ = [
    # Key/value stores
    "KeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "NullKeyValueStore",
    "create_store",
    # Mirrored structures
    "FallbackMirror",
    "Record",
    "normalize_entity_name",
    "UploadsMap",
]
