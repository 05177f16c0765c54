"""Tests for the fallback mirror."""

from __future__ import annotations

import json

import pytest

from resilient_entities.storage import FallbackMirror, MemoryKeyValueStore, normalize_entity_name


@pytest.fixture
def mirror() -> FallbackMirror:
    return FallbackMirror(MemoryKeyValueStore(), key="fallback")


class TestReadWrite:
    """Tests for read_list/write_list."""

    def test_empty_entity_reads_as_empty_list(self, mirror: FallbackMirror) -> None:
        assert mirror.read_list("Material") == []

    def test_entity_names_are_normalized(self, mirror: FallbackMirror) -> None:
        mirror.write_list("  Material ", [{"id": "1"}])

        assert mirror.read_list("material") == [{"id": "1"}]
        assert mirror.entities() == ["material"]
        assert normalize_entity_name(" PurchaseOrder") == "purchaseorder"

    def test_corrupt_json_reads_as_empty(self) -> None:
        store = MemoryKeyValueStore({"fallback": "{not json"})
        mirror = FallbackMirror(store, key="fallback")

        assert mirror.read_list("material") == []

    def test_non_list_entry_reads_as_empty(self) -> None:
        store = MemoryKeyValueStore({"fallback": json.dumps({"material": {"id": "1"}})})
        mirror = FallbackMirror(store, key="fallback")

        assert mirror.read_list("material") == []

    def test_returned_records_are_copies(self, mirror: FallbackMirror) -> None:
        """Mutating a returned record must not change the mirror."""
        mirror.write_list("bin", [{"id": "1", "tags": ["a"]}])

        records = mirror.read_list("bin")
        records[0]["code"] = "X"
        records[0]["tags"].append("b")

        assert mirror.read_list("bin") == [{"id": "1", "tags": ["a"]}]

    def test_mirror_is_stored_under_single_key(self, mirror: FallbackMirror) -> None:
        mirror.write_list("bin", [{"id": "1"}])
        mirror.write_list("zone", [{"id": "z"}])

        stored = json.loads(mirror.store.get("fallback"))
        assert stored == {"bin": [{"id": "1"}], "zone": [{"id": "z"}]}


class TestUpsert:
    """Tests for merge-upsert semantics."""

    def test_generates_fallback_id(self, mirror: FallbackMirror) -> None:
        record = mirror.upsert("material", {"name": "Copper"})

        assert record["id"].startswith("tmp_")
        assert record["created_date"] == record["updated_date"]
        assert mirror.read_list("material") == [record]

    def test_same_record_twice_is_idempotent(self, mirror: FallbackMirror) -> None:
        record = {"id": "42", "name": "Copper"}

        first = mirror.upsert("material", record)
        second = mirror.upsert("material", record)

        records = mirror.read_list("material")
        assert len(records) == 1
        assert second["updated_date"] >= first["updated_date"]
        assert second["created_date"] == first["created_date"]

    def test_merge_keeps_existing_fields(self, mirror: FallbackMirror) -> None:
        mirror.upsert("e", {"id": "1", "a": 1})
        merged = mirror.upsert("e", {"id": "1", "b": 2})

        assert merged["a"] == 1
        assert merged["b"] == 2
        assert {k: v for k, v in mirror.read_list("e")[0].items() if k in ("id", "a", "b")} == {
            "id": "1",
            "a": 1,
            "b": 2,
        }

    def test_incoming_fields_win(self, mirror: FallbackMirror) -> None:
        mirror.upsert("e", {"id": "1", "status": "draft"})
        merged = mirror.upsert("e", {"id": "1", "status": "posted"})

        assert merged["status"] == "posted"

    def test_identity_and_created_date_preserved(self, mirror: FallbackMirror) -> None:
        mirror.upsert("e", {"id": "7", "created_date": "2025-01-01T00:00:00.000Z"})
        merged = mirror.upsert("e", {"id": 7, "created_date": "2030-01-01T00:00:00.000Z"})

        assert merged["id"] == "7"
        assert merged["created_date"] == "2025-01-01T00:00:00.000Z"
        assert len(mirror.read_list("e")) == 1

    def test_missing_created_date_taken_from_incoming(self, mirror: FallbackMirror) -> None:
        mirror.write_list("e", [{"id": "1"}])
        merged = mirror.upsert("e", {"id": "1", "created_date": "2025-05-05T00:00:00.000Z"})

        assert merged["created_date"] == "2025-05-05T00:00:00.000Z"

    def test_blank_created_date_is_kept(self, mirror: FallbackMirror) -> None:
        mirror.write_list("e", [{"id": "1", "created_date": ""}])
        merged = mirror.upsert("e", {"id": "1", "created_date": "2025-05-05T00:00:00.000Z"})

        assert merged["created_date"] == ""

    def test_new_record_keeps_blank_created_date(self, mirror: FallbackMirror) -> None:
        assert mirror.upsert("e", {"id": "1", "created_date": ""})["created_date"] == ""

    def test_update_in_place_preserves_order(self, mirror: FallbackMirror) -> None:
        for record_id in ("a", "b", "c"):
            mirror.upsert("e", {"id": record_id})

        mirror.upsert("e", {"id": "b", "touched": True})

        assert [r["id"] for r in mirror.read_list("e")] == ["a", "b", "c"]

    def test_new_record_keeps_its_created_date(self, mirror: FallbackMirror) -> None:
        record = mirror.upsert("e", {"id": "1", "created_date": "2024-02-02T00:00:00.000Z"})

        assert record["created_date"] == "2024-02-02T00:00:00.000Z"
        assert record["updated_date"] != record["created_date"]

    def test_returned_record_is_a_copy(self, mirror: FallbackMirror) -> None:
        record = mirror.upsert("e", {"id": "1", "name": "x"})
        record["name"] = "changed"

        assert mirror.read_list("e")[0]["name"] == "x"

    def test_cap_drops_oldest_records(self) -> None:
        mirror = FallbackMirror(MemoryKeyValueStore(), max_records_per_entity=2)

        for record_id in ("1", "2", "3"):
            mirror.upsert("e", {"id": record_id})

        assert [r["id"] for r in mirror.read_list("e")] == ["2", "3"]


class TestRemoveAndGet:
    """Tests for remove/get/clear."""

    def test_remove_compares_ids_as_strings(self, mirror: FallbackMirror) -> None:
        mirror.write_list("e", [{"id": 5}, {"id": "6"}])

        mirror.remove("e", "5")
        mirror.remove("e", 6)

        assert mirror.read_list("e") == []

    def test_remove_unknown_id_keeps_list(self, mirror: FallbackMirror) -> None:
        mirror.write_list("e", [{"id": "1"}])

        mirror.remove("e", "2")

        assert mirror.read_list("e") == [{"id": "1"}]

    def test_get_by_numeric_id(self, mirror: FallbackMirror) -> None:
        mirror.write_list("e", [{"id": "10", "name": "ten"}])

        assert mirror.get("e", 10) == {"id": "10", "name": "ten"}
        assert mirror.get("e", 11) is None

    def test_clear_single_entity(self, mirror: FallbackMirror) -> None:
        mirror.write_list("a", [{"id": "1"}])
        mirror.write_list("b", [{"id": "2"}])

        mirror.clear("a")

        assert mirror.entities() == ["b"]

    def test_clear_everything(self, mirror: FallbackMirror) -> None:
        mirror.write_list("a", [{"id": "1"}])

        mirror.clear()

        assert mirror.entities() == []
        assert mirror.store.get("fallback") is None

    def test_lock_shared_per_normalized_name(self, mirror: FallbackMirror) -> None:
        assert mirror.lock("Material") is mirror.lock(" material")
        assert mirror.lock("Material") is not mirror.lock("Bin")
