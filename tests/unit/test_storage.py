"""Tests for the key-value storage backends."""

from __future__ import annotations

from pathlib import Path

import pytest

from formengine.runtime.storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    SqliteStore,
    open_store,
    read_json,
    write_json,
)


@pytest.fixture(params=["memory", "json", "sqlite", "sqlite-file"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> KeyValueStore:
    if request.param == "memory":
        return MemoryStore()
    if request.param == "json":
        return JsonFileStore(tmp_path / "state" / "store.json")
    if request.param == "sqlite":
        return SqliteStore()
    return SqliteStore(tmp_path / "state" / "store.db")


class TestKeyValueStore:
    def test_get_missing(self, store: KeyValueStore) -> None:
        assert store.get("nope") is None

    def test_set_get_replace(self, store: KeyValueStore) -> None:
        store.set("a", "1")
        store.set("a", "2")
        assert store.get("a") == "2"

    def test_remove(self, store: KeyValueStore) -> None:
        store.set("a", "1")
        store.remove("a")
        store.remove("never-there")
        assert store.get("a") is None

    def test_keys_by_prefix_sorted(self, store: KeyValueStore) -> None:
        for key in ("Call_b", "Call_a", "Other"):
            store.set(key, "x")
        assert store.keys("Call_") == ["Call_a", "Call_b"]
        assert store.keys() == ["Call_a", "Call_b", "Other"]

    def test_clear_prefix(self, store: KeyValueStore) -> None:
        for key in ("Call_a", "Call_b", "Other"):
            store.set(key, "x")
        assert store.clear("Call_") == 2
        assert store.keys() == ["Other"]


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        JsonFileStore(path).set("k", "v")
        assert JsonFileStore(path).get("k") == "v"

    def test_corrupt_document_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = JsonFileStore(path)
        assert store.keys() == []
        store.set("k", "v")
        assert store.get("k") == "v"

    def test_non_object_document_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")
        assert JsonFileStore(path).get("0") is None

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "store.json")
        store.set("a", "1")
        store.set("b", "2")
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]


class TestOpenStore:
    def test_sqlite_by_suffix(self, tmp_path: Path) -> None:
        assert isinstance(open_store(tmp_path / "forms.db"), SqliteStore)
        assert isinstance(open_store(tmp_path / "forms.sqlite3"), SqliteStore)

    def test_json_otherwise(self, tmp_path: Path) -> None:
        assert isinstance(open_store(tmp_path / "forms.json"), JsonFileStore)


class TestJsonHelpers:
    def test_round_trip(self) -> None:
        store = MemoryStore()
        write_json(store, "k", {"a": [1, 2], "b": None})
        assert read_json(store, "k") == {"a": [1, 2], "b": None}

    def test_missing_and_corrupt(self) -> None:
        store = MemoryStore({"bad": "{oops"})
        assert read_json(store, "missing") is None
        assert read_json(store, "bad") is None

    def test_non_json_values_stringified(self) -> None:
        store = MemoryStore()
        write_json(store, "k", {"path": Path("/tmp/x")})
        assert read_json(store, "k") == {"path": "/tmp/x"}
