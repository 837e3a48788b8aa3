"""
Tests for hourly snapshot compaction.

Validates last-write-wins merging, cold start, skip-on-empty, idempotence
and failure behavior against the in-memory store.
"""
from __future__ import annotations

from datetime import date, datetime

import pytest

from replay_store.buckets import BucketLoader
from replay_store.codec import decode_record, encode_record
from replay_store.compactor import SnapshotCompactor
from replay_store.errors import StoreUnavailable
from replay_store.records import FileRecord
from replay_store.storage.keys import snapshot_prefix


def _upload(writer, name: str, content: bytes, when: datetime) -> str:
    return writer.write(FileRecord(name, content), when)


def _contents(loader, day: date, hour: int) -> dict:
    return {name: record.content for name, record in loader.load_snapshot(day, hour).items()}


class TestCompactHour:
    """Test compaction of a single hour."""

    def test_last_write_wins_over_predecessor(self, writer, compactor, loader, day):
        """Predecessor {A: v1} plus deltas {A: v2, B: v3} yields {A: v2, B: v3}."""
        _upload(writer, "A", b"v1", datetime(2024, 3, 14, 8, 5))
        compactor.compact_hour(day, 8)

        _upload(writer, "A", b"v2", datetime(2024, 3, 14, 9, 10))
        _upload(writer, "B", b"v3", datetime(2024, 3, 14, 9, 50))
        result = compactor.compact_hour(day, 9)

        assert result.compacted
        assert result.base == (day, 8)
        assert _contents(loader, day, 9) == {"A": b"v2", "B": b"v3"}

    def test_later_quarter_wins_within_hour(self, writer, compactor, loader, day):
        _upload(writer, "A", b"early", datetime(2024, 3, 14, 9, 1))
        _upload(writer, "A", b"late", datetime(2024, 3, 14, 9, 31))
        compactor.compact_hour(day, 9)
        assert _contents(loader, day, 9) == {"A": b"late"}

    def test_cold_start(self, writer, compactor, loader, day):
        """First hour ever compacts from an empty base."""
        _upload(writer, "A", b"v1", datetime(2024, 3, 14, 9, 0))
        result = compactor.compact_hour(day, 9)

        assert result.status == "compacted"
        assert result.base is None
        assert result.keys == ("2024/03/14/snapshots/09/A",)
        assert result.record_count == 1
        assert _contents(loader, day, 9) == {"A": b"v1"}

    def test_predecessor_records_carried_forward(self, writer, compactor, loader, day):
        _upload(writer, "old", b"1", datetime(2024, 3, 14, 8, 0))
        compactor.compact_hour(day, 8)
        _upload(writer, "new", b"2", datetime(2024, 3, 14, 9, 0))
        compactor.compact_hour(day, 9)
        assert _contents(loader, day, 9) == {"old": b"1", "new": b"2"}

    def test_skip_on_empty_writes_nothing(self, compactor, store, day):
        result = compactor.compact_hour(day, 11)
        assert result.status == "skipped"
        assert not result.compacted
        assert result.keys == ()
        assert store.puts == []
        assert store.list(snapshot_prefix(day, 11)) == []

    def test_skip_does_not_read_predecessor(self, compactor, store, day):
        compactor.compact_hour(day, 11)
        assert snapshot_prefix(day, 10) not in store.lists

    def test_midnight_uses_previous_day_hour_23(self, writer, compactor, loader, day):
        _upload(writer, "A", b"yesterday", datetime(2024, 3, 13, 23, 50))
        compactor.compact_hour(date(2024, 3, 13), 23)

        _upload(writer, "B", b"today", datetime(2024, 3, 14, 0, 10))
        result = compactor.compact_hour(day, 0)

        assert result.base == (date(2024, 3, 13), 23)
        assert _contents(loader, day, 0) == {"A": b"yesterday", "B": b"today"}


class TestCompactionIdempotence:
    """Test that repeated runs converge."""

    def test_recompaction_is_byte_identical(self, writer, compactor, store, day):
        _upload(writer, "A", b"1", datetime(2024, 3, 14, 9, 0))
        _upload(writer, "B", b"2", datetime(2024, 3, 14, 9, 20))
        compactor.compact_hour(day, 9)
        first = {key: store.raw(key) for key in store.list(snapshot_prefix(day, 9))}

        compactor.compact_hour(day, 9)
        second = {key: store.raw(key) for key in store.list(snapshot_prefix(day, 9))}
        assert first == second

    def test_recompaction_picks_up_late_upload(self, writer, compactor, loader, day):
        """doc.bin uploaded at 09:07 then 09:47 ends with the 09:47 content."""
        _upload(writer, "doc.bin", b"first", datetime(2024, 1, 1, 9, 7))
        compactor.compact_hour(date(2024, 1, 1), 9)
        assert _contents(loader, date(2024, 1, 1), 9) == {"doc.bin": b"first"}

        _upload(writer, "doc.bin", b"second", datetime(2024, 1, 1, 9, 47))
        compactor.compact_hour(date(2024, 1, 1), 9)
        assert _contents(loader, date(2024, 1, 1), 9) == {"doc.bin": b"second"}

    def test_compressed_snapshots(self, store, writer, day):
        loader = BucketLoader(store, workers=2)
        compactor = SnapshotCompactor(store, loader, compress=True)
        _upload(writer, "A", b"z" * 2048, datetime(2024, 3, 14, 9, 0))
        result = compactor.compact_hour(day, 9)
        assert len(store.raw(result.keys[0])) < 2048
        assert decode_record(store.raw(result.keys[0])).content == b"z" * 2048


class TestCompactionFailures:
    """Test corrupt objects and store outages."""

    def test_corrupt_delta_skipped(self, writer, compactor, store, loader, day):
        _upload(writer, "good", b"ok", datetime(2024, 3, 14, 9, 0))
        store.put_raw("2024/03/14/delta/09/15/bad", b"garbage")
        result = compactor.compact_hour(day, 9)
        assert result.record_count == 1
        assert _contents(loader, day, 9) == {"good": b"ok"}

    def test_corrupt_predecessor_object_skipped(self, writer, compactor, store, loader, day):
        store.put(
            "2024/03/14/snapshots/08/kept",
            encode_record(FileRecord("kept", b"k")),
        )
        store.put_raw("2024/03/14/snapshots/08/broken", b"\x00" * 30)
        _upload(writer, "new", b"n", datetime(2024, 3, 14, 9, 0))
        compactor.compact_hour(day, 9)
        assert _contents(loader, day, 9) == {"kept": b"k", "new": b"n"}

    def test_list_failure_propagates_and_writes_nothing(self, writer, compactor, store, day):
        _upload(writer, "A", b"1", datetime(2024, 3, 14, 9, 0))
        store.fail_list_prefixes.add(snapshot_prefix(day, 8))
        with pytest.raises(StoreUnavailable):
            compactor.compact_hour(day, 9)
        assert store.list(snapshot_prefix(day, 9)) == []

    def test_get_failure_propagates(self, writer, compactor, store, day):
        key = _upload(writer, "A", b"1", datetime(2024, 3, 14, 9, 0))
        store.fail_get.add(key)
        with pytest.raises(StoreUnavailable):
            compactor.compact_hour(day, 9)


class TestLookback:
    """Test walking back past a skipped hour."""

    def _chain_with_gap(self, writer, compactor, day):
        _upload(writer, "early", b"e", datetime(2024, 3, 14, 9, 0))
        compactor.compact_hour(day, 9)
        assert compactor.compact_hour(day, 10).status == "skipped"
        _upload(writer, "late", b"l", datetime(2024, 3, 14, 11, 0))

    def test_without_lookback_only_adjacent_hour_is_checked(self, writer, compactor, loader, day):
        self._chain_with_gap(writer, compactor, day)
        result = compactor.compact_hour(day, 11)
        assert result.base is None
        assert _contents(loader, day, 11) == {"late": b"l"}

    def test_lookback_reaches_earlier_snapshot(self, store, writer, day):
        loader = BucketLoader(store, workers=2)
        compactor = SnapshotCompactor(store, loader, lookback_hours=3)
        self._chain_with_gap(writer, compactor, day)
        result = compactor.compact_hour(day, 11)
        assert result.base == (day, 9)
        assert _contents(loader, day, 11) == {"early": b"e", "late": b"l"}

    def test_lookback_replays_gap_deltas(self, store, writer, day):
        """Deltas of an hour that was never compacted are folded in."""
        loader = BucketLoader(store, workers=2)
        compactor = SnapshotCompactor(store, loader, lookback_hours=3)
        _upload(writer, "A", b"v1", datetime(2024, 3, 14, 8, 0))
        compactor.compact_hour(day, 8)
        _upload(writer, "A", b"v2", datetime(2024, 3, 14, 9, 30))   # hour 9 never compacted
        _upload(writer, "B", b"b", datetime(2024, 3, 14, 10, 0))
        result = compactor.compact_hour(day, 10)
        assert result.base == (day, 8)
        assert _contents(loader, day, 10) == {"A": b"v2", "B": b"b"}
