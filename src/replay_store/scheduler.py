"""
Hourly compaction trigger.

The compactor itself has no notion of "now". This module turns a clock
reading into the hour that just completed and drives compaction for it,
queueing hours so that runs never overlap and failed hours are retried.
"""
from __future__ import annotations

import logging
import threading
import time as _time
from collections import deque
from datetime import date, datetime, time, timedelta
from typing import Callable, Deque, List, Optional, Tuple

from .compactor import CompactionResult, SnapshotCompactor
from .errors import StoreUnavailable

__all__ = ["CompactionScheduler", "due_hour"]

logger = logging.getLogger(__name__)

Hour = Tuple[date, int]


def due_hour(now: datetime) -> Hour:
    """Return the (date, hour) that most recently completed at ``now``."""
    previous = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=1)
    return previous.date(), previous.hour


def _hour_start(hour: Hour) -> datetime:
    return datetime.combine(hour[0], time(hour[1]))


class CompactionScheduler:
    """
    Queues completed hours and compacts them one at a time.

    Each ``tick(now)`` enqueues the hour that completed at ``now`` (once),
    plus any hours completed since the previous tick, and drains the queue
    oldest first. A tick that finds another tick still
    running returns immediately instead of compacting concurrently. An hour
    whose compaction fails with StoreUnavailable stays at the head of the
    queue and is retried on the next tick.
    """

    def __init__(self, compactor: SnapshotCompactor) -> None:
        self._compactor = compactor
        self._pending: Deque[Hour] = deque()
        self._lock = threading.Lock()
        self._last_enqueued: Optional[Hour] = None

    @property
    def pending(self) -> List[Hour]:
        return list(self._pending)

    def enqueue(self, day: date, hour: int) -> None:
        """Queue an hour for compaction unless it is already queued."""
        if (day, hour) not in self._pending:
            self._pending.append((day, hour))

    def tick(self, now: datetime) -> List[CompactionResult]:
        """
        Compact every due hour.

        Returns:
            Results for the hours compacted (or skipped) during this tick
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Compaction already running, tick ignored")
            return []
        try:
            due = due_hour(now)
            if due != self._last_enqueued:
                for day, hour in self._hours_through(due):
                    self.enqueue(day, hour)
                self._last_enqueued = due
            return self._drain()
        finally:
            self._lock.release()

    def _hours_through(self, due: Hour) -> List[Hour]:
        """
        Hours completed since the last tick, oldest first, ending with ``due``.

        Covers ticks missed while the process was down or a drain ran past
        the next boundary, so no hour is left without a snapshot.
        """
        if self._last_enqueued is None:
            return [due]
        last = _hour_start(self._last_enqueued)
        target = _hour_start(due)
        if target <= last:
            return [due]
        hours = []
        cursor = last + timedelta(hours=1)
        while cursor <= target:
            hours.append((cursor.date(), cursor.hour))
            cursor += timedelta(hours=1)
        if len(hours) > 1:
            logger.warning(f"{len(hours) - 1} missed hour(s) queued before {due[0]} hour {due[1]:02d}")
        return hours

    def _drain(self) -> List[CompactionResult]:
        results = []
        while self._pending:
            day, hour = self._pending[0]
            try:
                results.append(self._compactor.compact_hour(day, hour))
            except StoreUnavailable as e:
                logger.error(f"Failed to build snapshot for {day} hour {hour:02d}, will retry: {e}")
                break
            self._pending.popleft()
        return results

    def run_forever(
        self,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = _time.sleep,
        *,
        stop: Optional[threading.Event] = None,
    ) -> None:
        """
        Tick at every hour boundary until ``stop`` is set.

        ``clock`` and ``sleep`` are injectable so the loop can be driven in tests.
        """
        while stop is None or not stop.is_set():
            self.tick(clock())
            now = clock()
            next_boundary = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
            sleep(max((next_boundary - now).total_seconds(), 1.0))
