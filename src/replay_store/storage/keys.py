"""
Time-bucket key scheme.

Centralizes the mapping between (category, date, hour, quarter, name) and
object-store keys. The layout is:

    {yyyy}/{MM}/{dd}/snapshots/{HH}/{name}
    {yyyy}/{MM}/{dd}/delta/{HH}/{mm}/{name}      mm in {00,15,30,45}

Every list/parse downstream goes through this module.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from ..errors import InvalidKey
from ..path_safety import safe_filename

__all__ = [
    "Category",
    "BucketKey",
    "QUARTERS",
    "floor_quarter",
    "encode_key",
    "decode_key",
    "snapshot_prefix",
    "delta_prefix",
    "delta_hour_prefix",
    "snapshots_day_prefix",
    "quarter_slots",
    "previous_hour",
    "bucket_members",
]

logger = logging.getLogger(__name__)

QUARTERS = (0, 15, 30, 45)
QUARTER = timedelta(minutes=15)


class Category(str, Enum):
    """Bucket category; the value is the path segment used in keys."""
    SNAPSHOT = "snapshots"
    DELTA = "delta"

    @classmethod
    def _missing_(cls, value):
        # Singular spelling of the snapshot category
        if value == "snapshot":
            return cls.SNAPSHOT
        return None


@dataclass(frozen=True)
class BucketKey:
    """
    Decoded components of an object key.

    Attributes:
        category: Snapshot or delta
        date: Calendar date of the bucket
        hour: Hour of day, 0-23
        quarter: Quarter-hour minute for deltas (0/15/30/45), None for snapshots
        name: Bare record filename
    """
    category: Category
    date: date
    hour: int
    quarter: Optional[int]
    name: str

    def encode(self) -> str:
        return encode_key(self.category, self.date, self.hour, self.quarter, self.name)

    @property
    def prefix(self) -> str:
        """Prefix of the bucket this key belongs to."""
        if self.category is Category.SNAPSHOT:
            return snapshot_prefix(self.date, self.hour)
        return delta_prefix(self.date, self.hour, self.quarter)


_KEY_PATTERN = re.compile(
    r"^(?P<y>[0-9]{4})/(?P<m>[0-9]{2})/(?P<d>[0-9]{2})/"
    r"(?:snapshots/(?P<sh>[0-9]{2})|delta/(?P<dh>[0-9]{2})/(?P<q>[0-9]{2}))/"
    r"(?P<name>[^/]+)$"
)


def floor_quarter(minute: int) -> int:
    """Floor a minute (0-59) to its quarter-hour boundary."""
    if not 0 <= minute <= 59:
        raise InvalidKey(f"minute must be 0-59, got {minute}")
    return (minute // 15) * 15


def _check_hour(hour: int) -> None:
    if not isinstance(hour, int) or not 0 <= hour <= 23:
        raise InvalidKey(f"hour must be 0-23, got {hour!r}")


def _check_quarter(category: Category, quarter: Optional[int]) -> None:
    if category is Category.DELTA:
        if quarter not in QUARTERS:
            raise InvalidKey(f"delta quarter must be one of {QUARTERS}, got {quarter!r}")
    elif quarter is not None:
        raise InvalidKey(f"snapshot keys carry no quarter, got {quarter!r}")


def _date_path(day: date) -> str:
    return f"{day.year:04d}/{day.month:02d}/{day.day:02d}"


def snapshot_prefix(day: date, hour: int) -> str:
    """Prefix of the snapshot bucket for one hour (trailing slash included)."""
    _check_hour(hour)
    return f"{_date_path(day)}/{Category.SNAPSHOT.value}/{hour:02d}/"


def delta_prefix(day: date, hour: int, quarter: int) -> str:
    """Prefix of one quarter-hour delta bucket."""
    _check_hour(hour)
    _check_quarter(Category.DELTA, quarter)
    return f"{_date_path(day)}/{Category.DELTA.value}/{hour:02d}/{quarter:02d}/"


def delta_hour_prefix(day: date, hour: int) -> str:
    """Prefix covering all four quarter buckets of an hour."""
    _check_hour(hour)
    return f"{_date_path(day)}/{Category.DELTA.value}/{hour:02d}/"


def snapshots_day_prefix(day: date) -> str:
    """Prefix covering every snapshot bucket of a day."""
    return f"{_date_path(day)}/{Category.SNAPSHOT.value}/"


def encode_key(
    category: Category,
    day: date,
    hour: int,
    quarter: Optional[int],
    name: str,
) -> str:
    """
    Build the object key for a record.

    Directory components in ``name`` are stripped so a caller can never
    address a key outside the bucket.

    Raises:
        InvalidKey: If hour/quarter are out of range or the name is unusable
    """
    try:
        category = Category(category)
    except ValueError:
        raise InvalidKey(f"unknown category {category!r}") from None
    _check_quarter(category, quarter)
    filename = safe_filename(name)
    if category is Category.SNAPSHOT:
        return snapshot_prefix(day, hour) + filename
    return delta_prefix(day, hour, quarter) + filename


def decode_key(key: str) -> BucketKey:
    """
    Parse an object key back into its components.

    Raises:
        InvalidKey: If the key does not follow the snapshot/delta layout
    """
    match = _KEY_PATTERN.match(key or "")
    if not match:
        raise InvalidKey(f"key does not match bucket layout: {key!r}")

    try:
        day = date(int(match["y"]), int(match["m"]), int(match["d"]))
    except ValueError as e:
        raise InvalidKey(f"key has invalid date: {key!r}") from e

    name = match["name"]
    if name in (".", "..") or "\\" in name or "\x00" in name:
        raise InvalidKey(f"key has unsafe name: {key!r}")

    if match["sh"] is not None:
        category, hour, quarter = Category.SNAPSHOT, int(match["sh"]), None
    else:
        category, hour, quarter = Category.DELTA, int(match["dh"]), int(match["q"])

    if not 0 <= hour <= 23:
        raise InvalidKey(f"key has invalid hour: {key!r}")
    if category is Category.DELTA and quarter not in QUARTERS:
        raise InvalidKey(f"key has invalid quarter: {key!r}")

    return BucketKey(category=category, date=day, hour=hour, quarter=quarter, name=name)


def quarter_slots(start: datetime, end: datetime) -> Iterator[datetime]:
    """
    Yield every quarter-hour slot from ``start`` to ``end`` inclusive.

    Both bounds are floored to their quarter first. Slots are produced in
    chronological order and may cross midnight.
    """
    current = start.replace(minute=floor_quarter(start.minute), second=0, microsecond=0)
    last = end.replace(minute=floor_quarter(end.minute), second=0, microsecond=0)
    while current <= last:
        yield current
        current += QUARTER


def previous_hour(day: date, hour: int) -> tuple[date, int]:
    """Return the (date, hour) immediately before the given hour."""
    _check_hour(hour)
    if hour == 0:
        return day - timedelta(days=1), 23
    return day, hour - 1


def bucket_members(keys: Iterable[str], prefix: str) -> List[BucketKey]:
    """
    Decode listed keys, keeping only those that belong to the bucket at ``prefix``.

    Keys outside the layout (nested paths, bad dates) or belonging to a
    different bucket are logged and dropped. Results are in ascending key order.
    """
    members = []
    for key in sorted(keys):
        if key.endswith("/"):
            continue
        try:
            decoded = decode_key(key)
        except InvalidKey as e:
            logger.warning(f"Skipping object {key}: {e}")
            continue
        if decoded.prefix != prefix:
            logger.warning(f"Skipping object {key}: does not belong to bucket {prefix}")
            continue
        members.append(decoded)
    return members
