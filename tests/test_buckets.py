"""
Tests for bucket loading and the shared merge rule.
"""
from __future__ import annotations

from datetime import date, datetime

import pytest

from replay_store.buckets import BucketLoader
from replay_store.codec import encode_record
from replay_store.errors import StoreUnavailable
from replay_store.merge import apply_layer, layer_all
from replay_store.records import FileRecord

DAY = date(2024, 3, 14)
P = "2024/03/14/delta/09/00/"


def _put(store, key: str, name: str, content: bytes) -> None:
    store.put(key, encode_record(FileRecord(name, content)))


class TestMerge:
    """Test last-write-wins layering."""

    def test_later_layer_wins(self):
        a1, a2, b = FileRecord("A", b"1"), FileRecord("A", b"2"), FileRecord("B", b"3")
        assert layer_all([{"A": a1}, {"A": a2, "B": b}]) == {"A": a2, "B": b}

    def test_layer_all_does_not_mutate_base(self):
        base = {"A": FileRecord("A", b"1")}
        layer_all([{"A": FileRecord("A", b"2")}], base)
        assert base["A"].content == b"1"

    def test_apply_layer_in_place(self):
        base = {}
        assert apply_layer(base, {"A": FileRecord("A", b"1")}) is base
        assert "A" in base


class TestBucketLoader:
    """Test prefix loading."""

    def test_keys_applied_in_sorted_order(self, store):
        """Records come back keyed by name regardless of listing order."""
        for name in ("c", "a", "b"):
            _put(store, P + name, name, name.encode())
        loaded = BucketLoader(store, workers=4).load_prefix(P)
        assert list(loaded) == ["a", "b", "c"]

    def test_result_independent_of_worker_count(self, store):
        for i in range(20):
            _put(store, f"{P}r{i:02d}", f"r{i:02d}", str(i).encode())
        single = BucketLoader(store, workers=1).load_prefix(P)
        pooled = BucketLoader(store, workers=8).load_prefix(P)
        assert len(single) == 20
        assert single == pooled

    def test_vanished_object_skipped(self, store):
        _put(store, P + "a", "a", b"1")
        _put(store, P + "b", "b", b"2")
        listing = store.list

        def list_then_delete(prefix):
            keys = listing(prefix)
            store.delete(P + "a")
            return keys

        store.list = list_then_delete
        assert set(BucketLoader(store, workers=2).load_prefix(P)) == {"b"}

    def test_nested_key_skipped(self, store, loader):
        _put(store, P + "sub/x.bin", "x.bin", b"1")
        _put(store, P + "kept.bin", "kept.bin", b"2")
        assert set(loader.load_prefix(P)) == {"kept.bin"}

    def test_key_from_other_bucket_skipped(self, store, loader):
        """A store whose listing over-returns cannot leak a neighbouring bucket."""
        _put(store, P + "a", "a", b"1")
        _put(store, "2024/03/14/delta/09/15/b", "b", b"2")
        store.list = lambda prefix: ["2024/03/14/delta/09/15/b", P + "a"]
        assert set(loader.load_prefix(P)) == {"a"}

    def test_envelope_name_mismatch_skipped(self, store, loader):
        _put(store, P + "a.bin", "b.bin", b"1")
        assert loader.load_prefix(P) == {}
        assert store.gets == [P + "a.bin"]

    def test_empty_prefix(self, loader):
        assert loader.load_prefix("nothing/") == {}

    def test_load_delta_hour_order(self, writer, loader):
        writer.write(FileRecord("q45", b"x"), datetime(2024, 3, 14, 9, 50))
        writer.write(FileRecord("q00", b"x"), datetime(2024, 3, 14, 9, 1))
        quarters = loader.load_delta_hour(DAY, 9)
        assert [q for q, _ in quarters] == [0, 15, 30, 45]
        assert [set(m) for _, m in quarters] == [{"q00"}, set(), set(), {"q45"}]

    def test_get_failure_propagates(self, store):
        _put(store, P + "a", "a", b"1")
        _put(store, P + "b", "b", b"2")
        store.fail_get.add(P + "b")
        with pytest.raises(StoreUnavailable):
            BucketLoader(store, workers=2).load_prefix(P)

    def test_workers_validated(self, store):
        with pytest.raises(ValueError):
            BucketLoader(store, workers=0)


class TestLoadStateAtHour:
    """Test cumulative state lookup with optional walk-back."""

    def test_snapshot_present(self, writer, compactor, loader):
        writer.write(FileRecord("a", b"1"), datetime(2024, 3, 14, 9, 0))
        compactor.compact_hour(DAY, 9)
        state, base_at = loader.load_state_at_hour(DAY, 9, lookback_hours=5)
        assert set(state) == {"a"}
        assert base_at == (DAY, 9)

    def test_no_lookback_returns_empty(self, loader):
        assert loader.load_state_at_hour(DAY, 9) == ({}, None)

    def test_walk_back_across_midnight(self, writer, compactor, loader):
        writer.write(FileRecord("a", b"1"), datetime(2024, 3, 13, 23, 0))
        compactor.compact_hour(date(2024, 3, 13), 23)
        writer.write(FileRecord("b", b"2"), datetime(2024, 3, 14, 0, 30))

        state, base_at = loader.load_state_at_hour(DAY, 1, lookback_hours=3)

        assert base_at == (date(2024, 3, 13), 23)
        assert {n: r.content for n, r in state.items()} == {"a": b"1", "b": b"2"}

    def test_lookback_exhausted_uses_deltas_only(self, writer, loader):
        writer.write(FileRecord("a", b"1"), datetime(2024, 3, 14, 8, 0))
        state, base_at = loader.load_state_at_hour(DAY, 9, lookback_hours=1)
        assert base_at is None
        assert set(state) == {"a"}
