"""
Fallback mirror of remote entities.

A single storage key holds a JSON object mapping normalized entity names
to ordered record lists:

    {"material": [{"id": "12", ...}, ...], "bin": [...]}

The repository writes every successful remote result through to the
mirror and reads/writes it directly whenever the remote call fails.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import Any

from ..id_utils import generate_fallback_id, same_id, utc_now_iso
from .kv import KeyValueStore

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def normalize_entity_name(name: str) -> str:
    """Mirror key for an entity: trimmed and lower-cased."""
    return str(name).strip().lower()


def _first_present(*values: Any) -> Any:
    # Only None counts as absent; "" and 0 are kept.
    return next((v for v in values if v is not None), None)


class FallbackMirror:
    """Persisted per-entity record lists with merge-upsert semantics.

    Invariants:
    - Within one entity's list, ids are unique when compared as strings
    - Insertion order is preserved; updates happen in place
    - Returned records are deep copies; callers cannot mutate the mirror

    Every method is synchronous and free of await points, so one call is
    never interleaved with another on the event loop. `lock()` provides a
    per-entity asyncio.Lock for callers that need a whole remote round-trip
    plus mirror write to be ordered against other writers.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "resilient_entities:fallback",
        max_records_per_entity: int | None = None,
    ) -> None:
        """Initialize the mirror.

        Args:
            store: Persistence surface
            key: Storage key holding the serialized entity map
            max_records_per_entity: Drop the oldest records once an entity's
                list grows past this size (None = unbounded)
        """
        self.store = store
        self.key = key
        self.max_records_per_entity = max_records_per_entity
        self._locks: dict[str, asyncio.Lock] = {}

    def _read_map(self) -> dict[str, Any]:
        raw = self.store.get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable fallback mirror under '{self.key}'")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_map(self, data: dict[str, Any]) -> None:
        try:
            payload = json.dumps(data, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize fallback mirror: {e}")
            return
        self.store.set(self.key, payload)

    def read_list(self, entity: str) -> list[Record]:
        """Return copies of the mirrored records for an entity."""
        records = self._read_map().get(normalize_entity_name(entity))
        if not isinstance(records, list):
            return []
        return [copy.deepcopy(r) for r in records if isinstance(r, dict)]

    def write_list(self, entity: str, records: list[Record]) -> None:
        """Replace an entity's mirrored list."""
        data = self._read_map()
        data[normalize_entity_name(entity)] = [dict(r) for r in records if isinstance(r, dict)]
        self._write_map(data)

    def get(self, entity: str, record_id: Any) -> Record | None:
        """Look up one record by id (string-compared)."""
        for record in self.read_list(entity):
            if same_id(record.get("id"), record_id):
                return record
        return None

    def upsert(self, entity: str, record: Record) -> Record:
        """Merge a record into an entity's list.

        Incoming fields win, except that an existing record keeps its id
        and created_date. updated_date is always refreshed.

        Returns:
            A copy of the merged record
        """
        now = utc_now_iso()
        incoming = dict(record)
        if incoming.get("id") is None or incoming.get("id") == "":
            incoming["id"] = generate_fallback_id()

        records = self.read_list(entity)
        for index, existing in enumerate(records):
            if same_id(existing.get("id"), incoming["id"]):
                merged = {
                    **existing,
                    **incoming,
                    "id": existing.get("id"),
                    "created_date": _first_present(
                        existing.get("created_date"), incoming.get("created_date"), now
                    ),
                    "updated_date": now,
                }
                records[index] = merged
                break
        else:
            merged = {
                **incoming,
                "created_date": _first_present(incoming.get("created_date"), now),
                "updated_date": now,
            }
            records.append(merged)
            records = self._apply_cap(entity, records)

        self.write_list(entity, records)
        return copy.deepcopy(merged)

    def remove(self, entity: str, record_id: Any) -> None:
        """Drop every record whose id matches (string-compared)."""
        records = self.read_list(entity)
        remaining = [r for r in records if not same_id(r.get("id"), record_id)]
        self.write_list(entity, remaining)

    def entities(self) -> list[str]:
        """Normalized names of all mirrored entities."""
        return sorted(self._read_map())

    def clear(self, entity: str | None = None) -> None:
        """Forget one entity's records, or the whole mirror."""
        if entity is None:
            self.store.remove(self.key)
            return
        data = self._read_map()
        if data.pop(normalize_entity_name(entity), None) is not None:
            self._write_map(data)

    def lock(self, entity: str) -> asyncio.Lock:
        """Per-entity lock shared by every repository over this mirror."""
        name = normalize_entity_name(entity)
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def _apply_cap(self, entity: str, records: list[Record]) -> list[Record]:
        limit = self.max_records_per_entity
        if limit is None or len(records) <= limit:
            return records
        dropped = len(records) - limit
        logger.info(f"Fallback mirror for '{entity}' over cap; dropping {dropped} oldest records")
        return records[dropped:]
