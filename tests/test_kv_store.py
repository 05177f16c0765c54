"""Tests for the key/value store adapters."""

from __future__ import annotations

import json
from pathlib import Path

from resilient_entities import ClientConfig
from resilient_entities.storage import (
    FileKeyValueStore,
    MemoryKeyValueStore,
    NullKeyValueStore,
    create_store,
)


class TestMemoryStore:
    def test_set_get_remove(self) -> None:
        store = MemoryKeyValueStore()

        store.set("a", "1")
        assert store.get("a") == "1"
        assert store.keys() == ["a"]

        store.remove("a")
        assert store.get("a") is None

    def test_remove_missing_key_is_noop(self) -> None:
        MemoryKeyValueStore().remove("missing")


class TestNullStore:
    def test_nothing_is_kept(self) -> None:
        store = NullKeyValueStore()

        store.set("a", "1")

        assert store.get("a") is None
        assert store.keys() == []


class TestFileStore:
    """Tests for the JSON file store."""

    def test_values_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "storage.json"
        FileKeyValueStore(path).set("token", "abc")

        assert FileKeyValueStore(path).get("token") == "abc"
        assert json.loads(path.read_text()) == {"token": "abc"}

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "storage.json"

        FileKeyValueStore(path).set("a", "1")

        assert path.exists()

    def test_remove_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "storage.json"
        store = FileKeyValueStore(path)
        store.set("a", "1")
        store.set("b", "2")

        store.remove("a")

        assert FileKeyValueStore(path).keys() == ["b"]

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path / "storage.json")

        store.set("a", "1")
        store.set("a", "2")

        assert [p.name for p in tmp_path.iterdir()] == ["storage.json"]

    def test_corrupt_file_treated_as_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "storage.json"
        path.write_text("{not json")

        store = FileKeyValueStore(path)

        assert store.get("a") is None
        store.set("a", "1")
        assert FileKeyValueStore(path).get("a") == "1"

    def test_non_object_file_treated_as_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "storage.json"
        path.write_text('["a", "b"]')

        assert FileKeyValueStore(path).keys() == []

    def test_write_failure_is_swallowed(self, tmp_path: Path) -> None:
        """A path that cannot be written keeps working from memory."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileKeyValueStore(blocker / "storage.json")

        store.set("a", "1")

        assert store.get("a") == "1"


class TestCreateStore:
    def test_backend_selection(self, tmp_path: Path) -> None:
        path = tmp_path / "storage.json"

        assert isinstance(create_store(ClientConfig(storage_backend="none")), NullKeyValueStore)
        assert isinstance(create_store(ClientConfig(storage_backend="memory")), MemoryKeyValueStore)

        file_store = create_store(ClientConfig(storage_backend="file", storage_path=str(path)))
        assert isinstance(file_store, FileKeyValueStore)
        assert file_store.path == path
