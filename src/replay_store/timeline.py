"""
Timeline index for scrubber UIs.

Groups delta object references by the HHMM timestamp embedded in each
object's filename. Read-only: object bodies are never fetched and nothing is
merged.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional

from .errors import InvalidKey, InvalidRange
from .storage.base import ObjectStore
from .storage.keys import (
    Category, bucket_members, decode_key, delta_prefix, quarter_slots, snapshots_day_prefix,
)

__all__ = ["Timeline", "TimelineBuilder", "parse_name_timestamp", "key_reference", "presigned_reference"]

logger = logging.getLogger(__name__)

# First 4-digit run followed by '-', e.g. "0907-camera.bin"
_TOKEN = re.compile(r"([0-9]{4})-")

Reference = Callable[[str], str]


def parse_name_timestamp(filename: str, day: date) -> Optional[datetime]:
    """
    Extract the HHMM token from a filename as a datetime on ``day``.

    Returns:
        The timestamp, or None when the name has no token or the token is
        not a valid time of day
    """
    match = _TOKEN.search(filename)
    if not match:
        return None
    token = match.group(1)
    hh, mm = int(token[:2]), int(token[2:])
    if hh > 23 or mm > 59:
        return None
    return datetime.combine(day, time(hh, mm))


def key_reference(key: str) -> str:
    """Reference objects by their raw key."""
    return key


def presigned_reference(store: ObjectStore, expires_s: int) -> Reference:
    """Reference objects by presigned GET URL."""
    def sign(key: str) -> str:
        return store.presign_url(key, expires_s)
    return sign


@dataclass
class Timeline:
    """
    Timeline view of a day.

    Attributes:
        frames: timestamp -> delta object references, ordered by timestamp
        snapshots: references to every snapshot object of the day
    """
    frames: Dict[datetime, List[str]] = field(default_factory=dict)
    snapshots: List[str] = field(default_factory=list)


class TimelineBuilder:
    """Lists delta keys per quarter bucket and groups them by name timestamp."""

    def __init__(self, store: ObjectStore, *, reference: Reference = key_reference) -> None:
        self._store = store
        self._reference = reference

    def build_timeline(self, day: date, start_hour: int, end_hour: int) -> Dict[datetime, List[str]]:
        """
        Group delta references from ``start_hour:00`` through ``end_hour:59``.

        Objects whose filename carries no parseable HHMM token are left out;
        they still take part in reconstruction.

        Raises:
            InvalidRange: If hours are out of range or reversed
            StoreUnavailable: If a listing fails
        """
        if not (0 <= start_hour <= 23 and 0 <= end_hour <= 23) or start_hour > end_hour:
            raise InvalidRange(f"invalid hour range {start_hour}-{end_hour}")

        grouped: Dict[datetime, List[str]] = {}
        skipped = 0
        for slot in quarter_slots(datetime.combine(day, time(start_hour, 0)),
                                  datetime.combine(day, time(end_hour, 59))):
            prefix = delta_prefix(day, slot.hour, slot.minute)
            for member in bucket_members(self._store.list(prefix), prefix):
                stamp = parse_name_timestamp(member.name, day)
                if stamp is None:
                    skipped += 1
                    continue
                grouped.setdefault(stamp, []).append(self._reference(member.encode()))

        if skipped:
            logger.debug(f"{skipped} delta objects without a timestamp token left out of the timeline")
        return dict(sorted(grouped.items()))

    def snapshot_references(self, day: date) -> List[str]:
        """References to every snapshot object of ``day``, in key order."""
        references = []
        for key in sorted(self._store.list(snapshots_day_prefix(day))):
            try:
                decoded = decode_key(key)
            except InvalidKey as e:
                logger.warning(f"Skipping object {key}: {e}")
                continue
            if decoded.category is not Category.SNAPSHOT or decoded.date != day:
                logger.warning(f"Skipping object {key}: not a snapshot of {day}")
                continue
            references.append(self._reference(key))
        return references

    def timeline(self, day: date, start_hour: int, end_hour: int) -> Timeline:
        return Timeline(
            frames=self.build_timeline(day, start_hour, end_hour),
            snapshots=self.snapshot_references(day),
        )
