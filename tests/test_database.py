"""
Music Box - Key-Value Store Tests

Tests for JSON get/set, last-modified timestamps, prefix key listing and
the async API.
"""

import sqlite3
import time

from musicbox.database import KeyValueStore
from tests.conftest import run


class TestKeyValueStore:
    def test_missing_key_returns_default(self, kv_store):
        assert kv_store.get_json("nope") is None
        assert kv_store.get_json("nope", []) == []

    def test_round_trip_json(self, kv_store):
        value = {"name": "歌曲", "ids": [1, 2, 3]}
        kv_store.set_json("thing", value)
        assert kv_store.get_json("thing") == value

    def test_last_modified(self, kv_store):
        assert kv_store.get_last_modified("stamp") is None
        before = time.time()
        kv_store.set_json("stamp", 1)
        modified = kv_store.get_last_modified("stamp")
        assert modified is not None
        assert before <= modified <= time.time()

    def test_overwrite_updates_timestamp(self, kv_store):
        kv_store.set_json("k", 1)
        first = kv_store.get_last_modified("k")
        time.sleep(0.01)
        kv_store.set_json("k", 2)
        assert kv_store.get_json("k") == 2
        assert kv_store.get_last_modified("k") > first

    def test_delete(self, kv_store):
        kv_store.set_json("gone", True)
        assert kv_store.delete("gone") is True
        assert kv_store.delete("gone") is False
        assert kv_store.get_json("gone") is None

    def test_keys_by_prefix(self, kv_store):
        kv_store.set_json("zip_charset:/a.zip", "utf-8")
        kv_store.set_json("zip_charset:/b.zip", "gbk")
        kv_store.set_json("zipXcharset:/c.zip", "gbk")
        kv_store.set_json("other", 1)
        assert kv_store.keys("zip_charset:") == ["zip_charset:/a.zip", "zip_charset:/b.zip"]

    def test_corrupt_value_returns_default(self, kv_store):
        with sqlite3.connect(str(kv_store.db_path)) as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                ("bad", "{not json", time.time()),
            )
        assert kv_store.get_json("bad", "fallback") == "fallback"

    def test_async_api(self, kv_store):
        run(kv_store.aset_json("async", ["a", "b"]))
        assert run(kv_store.aget_json("async")) == ["a", "b"]
        assert kv_store.get_json("async") == ["a", "b"]
        assert run(kv_store.aget_last_modified("async")) == kv_store.get_last_modified("async")

    def test_init_is_idempotent(self, tmp_path):
        store = KeyValueStore(tmp_path / "again.db")
        store.init()
        store.set_json("k", "v")
        store.init()
        assert store.get_json("k") == "v"

    def test_schema_columns(self, kv_store):
        with sqlite3.connect(str(kv_store.db_path)) as conn:
            columns = [row[1] for row in conn.execute("PRAGMA table_info(kv_store)")]
        assert columns == ["key", "value", "updated_at"]
