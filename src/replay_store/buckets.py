"""
Bucket loading: list a prefix, fetch every object, decode into records.

Fetches run concurrently but records are applied in sorted key order, so the
resulting mapping never depends on which download finished first.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import List, Optional, Tuple

from .codec import decode_record
from .errors import CorruptRecord, ObjectNotFound
from .merge import layer_all
from .records import FileRecord, RecordMap
from .storage.base import ObjectStore
from .storage.keys import QUARTERS, BucketKey, bucket_members, delta_prefix, previous_hour, snapshot_prefix

__all__ = ["BucketLoader"]

logger = logging.getLogger(__name__)


class BucketLoader:
    """
    Materializes buckets into name -> record mappings.

    Individual objects that are corrupt or vanish between list and get are
    skipped with a warning. Listing failures propagate (StoreUnavailable),
    as do transport failures on get after the adapter's retries.
    """

    def __init__(self, store: ObjectStore, *, workers: int = 8) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._store = store
        self._workers = workers

    def load_prefix(self, prefix: str) -> RecordMap:
        """
        Load every record in the bucket at ``prefix``.

        Listed keys that do not decode to this bucket are skipped, as are
        objects whose envelope names a different record than the key.
        Records are applied in ascending key order.
        """
        members = bucket_members(self._store.list(prefix), prefix)
        if not members:
            logger.debug(f"No objects under {prefix}")
            return {}

        result: RecordMap = {}
        for record in self._fetch_all(members):
            if record is not None:
                result[record.name] = record
        logger.debug(f"Loaded {len(result)} records from {len(members)} objects under {prefix}")
        return result

    def load_snapshot(self, day: date, hour: int) -> RecordMap:
        return self.load_prefix(snapshot_prefix(day, hour))

    def load_delta(self, day: date, hour: int, quarter: int) -> RecordMap:
        return self.load_prefix(delta_prefix(day, hour, quarter))

    def load_delta_hour(self, day: date, hour: int) -> List[Tuple[int, RecordMap]]:
        """
        Load all four quarter buckets of an hour.

        Returns:
            (quarter, mapping) pairs in quarter order 00, 15, 30, 45
        """
        return [(quarter, self.load_delta(day, hour, quarter)) for quarter in QUARTERS]

    def load_state_at_hour(
        self, day: date, hour: int, *, lookback_hours: int = 0
    ) -> Tuple[RecordMap, Optional[Tuple[date, int]]]:
        """
        Load the cumulative state as of the end of an hour.

        Uses the snapshot of that hour. When it is empty and ``lookback_hours``
        is positive, walks back up to that many earlier hours for the nearest
        non-empty snapshot, then replays the delta quarters of every hour in
        between (the requested hour included) oldest first.

        Returns:
            (mapping, (date, hour) of the snapshot used as base or None)
        """
        snapshot = self.load_snapshot(day, hour)
        if snapshot or lookback_hours <= 0:
            return snapshot, ((day, hour) if snapshot else None)

        gap = [(day, hour)]
        base: RecordMap = {}
        base_at: Optional[Tuple[date, int]] = None
        cursor = (day, hour)
        for _ in range(lookback_hours):
            cursor = previous_hour(*cursor)
            base = self.load_snapshot(*cursor)
            if base:
                base_at = cursor
                break
            gap.append(cursor)

        if base_at is None:
            logger.info(f"No snapshot within {lookback_hours}h before {day} {hour:02d}, "
                        f"rebuilding from deltas only")
        else:
            logger.info(f"Snapshot {day} {hour:02d} empty, walked back to {base_at[0]} {base_at[1]:02d}")

        layers = [
            mapping
            for gap_day, gap_hour in reversed(gap)
            for _, mapping in self.load_delta_hour(gap_day, gap_hour)
        ]
        return layer_all(layers, base), base_at

    def _fetch_all(self, members: List[BucketKey]) -> List[Optional[FileRecord]]:
        if self._workers == 1 or len(members) == 1:
            return [self._fetch_one(member) for member in members]
        with ThreadPoolExecutor(max_workers=min(self._workers, len(members))) as executor:
            # map() preserves input order
            return list(executor.map(self._fetch_one, members))

    def _fetch_one(self, member: BucketKey) -> Optional[FileRecord]:
        key = member.encode()
        try:
            record = decode_record(self._store.get(key))
            if record.name != member.name:
                raise CorruptRecord(f"envelope names {record.name!r}, key names {member.name!r}", key=key)
            return record
        except CorruptRecord as e:
            logger.warning(f"Skipping corrupted or unreadable object {key}: {e}")
        except ObjectNotFound:
            logger.warning(f"Skipping object {key}: removed after listing")
        return None
