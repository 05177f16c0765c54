"""
Locally stored uploads.

Files that could not be sent to the backend are kept as data URLs under a
separate storage key, keyed by generated upload id:

    {"upload_lq2x...": {"id": ..., "file_name": ..., "mime_type": ...,
                        "data_url": ..., "created_at": ...}}
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from .kv import KeyValueStore

logger = logging.getLogger(__name__)


class UploadsMap:
    """Persisted map of upload id to upload record.

    Entries never expire. When `max_entries` is set, the entries with the
    oldest `created_at` are evicted once the map grows past it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "resilient_entities:uploads",
        max_entries: int | None = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.store = store
        self.key = key
        self.max_entries = max_entries

    def _read(self) -> dict[str, dict[str, Any]]:
        raw = self.store.get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable uploads map under '{self.key}'")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    def _write(self, data: dict[str, dict[str, Any]]) -> None:
        self.store.set(self.key, json.dumps(data))

    def get(self, upload_id: str) -> dict[str, Any] | None:
        entry = self._read().get(upload_id)
        return copy.deepcopy(entry) if entry is not None else None

    def put(self, entry: dict[str, Any]) -> None:
        """Store an upload record under its `id`."""
        data = self._read()
        data[entry["id"]] = dict(entry)

        if self.max_entries is not None and len(data) > self.max_entries:
            oldest = sorted(data, key=lambda k: str(data[k].get("created_at", "")))
            for upload_id in oldest[: len(data) - self.max_entries]:
                del data[upload_id]
            logger.info(f"Uploads map over cap; kept newest {self.max_entries} entries")

        self._write(data)

    def remove(self, upload_id: str) -> None:
        data = self._read()
        if data.pop(upload_id, None) is not None:
            self._write(data)

    def list_ids(self) -> list[str]:
        return list(self._read())

    def size(self) -> int:
        return len(self._read())
