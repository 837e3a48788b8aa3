"""
Point-in-time replay.

Reconstructs the record set as of the end of a requested window by layering
the start hour's snapshot with every delta quarter in the window.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Tuple

from .buckets import BucketLoader
from .errors import InvalidRange
from .merge import apply_layer
from .records import RecordMap
from .storage.keys import previous_hour, quarter_slots

__all__ = ["ReplayReconstructor", "validate_window"]

logger = logging.getLogger(__name__)


def validate_window(
    start_hour: int, start_minute: int, end_hour: int, end_minute: int
) -> Tuple[time, time]:
    """
    Check a same-day window and return its (start, end) times.

    Raises:
        InvalidRange: If any component is out of range or start is after end
    """
    for label, value, upper in (
        ("start_hour", start_hour, 23),
        ("start_minute", start_minute, 59),
        ("end_hour", end_hour, 23),
        ("end_minute", end_minute, 59),
    ):
        if not isinstance(value, int) or not 0 <= value <= upper:
            raise InvalidRange(f"{label} must be 0-{upper}, got {value!r}")

    start = time(start_hour, start_minute)
    end = time(end_hour, end_minute)
    if start > end:
        raise InvalidRange(f"window start {start:%H:%M} is after end {end:%H:%M}")
    return start, end


class ReplayReconstructor:
    """
    Rebuilds name -> record state for a time window.

    Shares the merge rule with SnapshotCompactor: replaying 00:00 through
    HH:59 over an intact snapshot chain yields exactly the snapshot that
    compaction wrote for HH.

    When the start hour has no snapshot (its compaction was skipped) the base
    is empty unless ``lookback_hours`` allows walking back to an earlier
    snapshot.
    """

    def __init__(self, loader: BucketLoader, *, lookback_hours: int = 0) -> None:
        self._loader = loader
        self._lookback_hours = lookback_hours

    def reconstruct(
        self,
        day: date,
        start_hour: int,
        start_minute: int,
        end_hour: int,
        end_minute: int,
    ) -> RecordMap:
        """
        Reconstruct the record set as of the end of a window.

        Args:
            day: Date of the window
            start_hour: Window start hour, 0-23
            start_minute: Window start minute, 0-59 (floored to the quarter)
            end_hour: Window end hour, 0-23
            end_minute: Window end minute, 0-59 (floored to the quarter)

        Returns:
            Mapping of record name to record; empty when nothing is stored

        Raises:
            InvalidRange: If the window is malformed
            StoreUnavailable: If the store cannot be reached
        """
        start, end = validate_window(start_hour, start_minute, end_hour, end_minute)
        first_slot = datetime.combine(day, start)

        result = self._loader.load_snapshot(day, start_hour)
        if not result and self._lookback_hours > 0:
            prev_day, prev_hour = previous_hour(day, start_hour)
            result, base_at = self._loader.load_state_at_hour(
                prev_day, prev_hour, lookback_hours=self._lookback_hours - 1
            )
            # Without the start hour's snapshot its earlier quarters must be replayed too
            first_slot = datetime.combine(day, time(start_hour, 0))
            logger.debug(f"Start snapshot {day} {start_hour:02d} empty, base from {base_at}")

        slots = 0
        for slot in quarter_slots(first_slot, datetime.combine(day, end)):
            apply_layer(result, self._loader.load_delta(slot.date(), slot.hour, slot.minute))
            slots += 1

        if not result:
            logger.info(f"No records found for {day} {start:%H:%M}-{end:%H:%M}")
        else:
            logger.debug(f"Reconstructed {len(result)} records for {day} "
                         f"{start:%H:%M}-{end:%H:%M} from {slots} delta buckets")
        return result
