"""
Persisted key/value store adapters.

The fallback mirror, the uploads map and the bearer token all live behind
this small synchronous contract. Write failures never reach the caller: a
full disk or read-only home directory degrades persistence, it does not
break the client.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from ..config import ClientConfig, StorageBackend

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Synchronous string-keyed persistence surface.

    Implementations must not raise from `set` or `remove`; failures are
    logged and swallowed.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored string, or None when absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a string value."""
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key if present."""
        ...

    def keys(self) -> list[str]:
        """Keys currently held (empty for stores that cannot enumerate)."""
        return []


class NullKeyValueStore(KeyValueStore):
    """Store used when no persistence surface exists. Everything is a no-op."""

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        return None

    def remove(self, key: str) -> None:
        return None


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """Store persisted as a single JSON object on disk.

    The file is read once at construction. Every mutation rewrites it
    atomically using a temp file + rename. If the write fails the in-memory
    view still holds the new value for the rest of the process.

    File layout:
        {"<key>": "<string value>", ...}
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._data = self._load()

    def _load(self) -> dict[str, str]:
        try:
            if not self.path.exists():
                return {}
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read key/value store {self.path}: {e}")
            return {}

        if not content.strip():
            return {}

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt key/value store {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring key/value store {self.path}: not a JSON object")
            return {}

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        temp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".tmp_",
                suffix=".json",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            logger.warning(f"Failed to persist key/value store {self.path}: {e}")
            if temp_path is not None:
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> list[str]:
        return list(self._data)


def create_store(config: ClientConfig) -> KeyValueStore:
    """Build the key/value store selected by configuration."""
    if config.storage_backend is StorageBackend.NONE:
        return NullKeyValueStore()
    if config.storage_backend is StorageBackend.MEMORY:
        return MemoryKeyValueStore()
    return FileKeyValueStore(config.resolved_storage_path)
