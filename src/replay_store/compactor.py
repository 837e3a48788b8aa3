"""
Snapshot compaction.

Folds one completed hour of deltas into the previous snapshot and writes the
result as that hour's snapshot bucket, one object per surviving name.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional, Tuple

from .buckets import BucketLoader
from .codec import encode_record
from .merge import layer_all
from .storage.base import ObjectStore
from .storage.keys import Category, encode_key, previous_hour, snapshot_prefix

__all__ = ["CompactionResult", "SnapshotCompactor"]

logger = logging.getLogger(__name__)

Status = Literal["compacted", "skipped"]


@dataclass(frozen=True)
class CompactionResult:
    """
    Outcome of compacting one hour.

    Attributes:
        date: Date of the compacted hour
        hour: Compacted hour, 0-23
        status: "compacted" when a snapshot was written, "skipped" when the
            hour had no deltas and nothing was written
        keys: Snapshot keys written, sorted
        record_count: Number of records in the new snapshot
        base: (date, hour) of the snapshot merged onto, None on cold start
    """
    date: date
    hour: int
    status: Status
    keys: Tuple[str, ...] = ()
    record_count: int = 0
    base: Optional[Tuple[date, int]] = None

    @property
    def compacted(self) -> bool:
        return self.status == "compacted"


class SnapshotCompactor:
    """
    Builds hourly snapshots from the previous snapshot plus the hour's deltas.

    Design Notes: Compaction

    The compactor is driven explicitly with (date, hour); it never reads a
    clock. Given the same stored objects the merged mapping is always the
    same, so a failed or repeated run is safely re-run. Snapshots of
    different hours live under disjoint prefixes, so compacting different
    hours concurrently is safe; the scheduler still runs them one at a time.

    Corrupt objects are skipped by the loader. Listing or write failures
    (StoreUnavailable) propagate and the hour stays uncompacted; objects
    already written for the hour are overwritten by the retry.
    """

    def __init__(
        self,
        store: ObjectStore,
        loader: BucketLoader,
        *,
        lookback_hours: int = 0,
        compress: bool = False,
    ) -> None:
        self._store = store
        self._loader = loader
        self._lookback_hours = lookback_hours
        self._compress = compress

    def compact_hour(self, day: date, hour: int) -> CompactionResult:
        """
        Compact the deltas of one completed hour into its snapshot.

        Args:
            day: Date of the hour
            hour: Hour that just completed, 0-23

        Returns:
            CompactionResult describing what was written

        Raises:
            InvalidKey: If hour is out of range
            StoreUnavailable: If listing or writing fails
        """
        quarters = self._loader.load_delta_hour(day, hour)
        if not any(mapping for _, mapping in quarters):
            logger.info(f"No deltas found for {day} hour {hour:02d}, skipping snapshot build")
            return CompactionResult(date=day, hour=hour, status="skipped")

        prev_day, prev_hour = previous_hour(day, hour)
        base, base_at = self._loader.load_state_at_hour(
            prev_day, prev_hour, lookback_hours=self._lookback_hours
        )
        if base_at is None and not base:
            logger.info(f"No predecessor snapshot for {day} hour {hour:02d}, starting from empty state")

        merged = layer_all((mapping for _, mapping in quarters), base)

        keys = []
        for name in sorted(merged):
            key = encode_key(Category.SNAPSHOT, day, hour, None, name)
            self._store.put(key, encode_record(merged[name], compress=self._compress))
            keys.append(key)

        logger.info(f"Snapshot built for {day} hour {hour:02d}: {len(keys)} records "
                    f"under {snapshot_prefix(day, hour)}")
        return CompactionResult(
            date=day,
            hour=hour,
            status="compacted",
            keys=tuple(keys),
            record_count=len(keys),
            base=base_at,
        )
