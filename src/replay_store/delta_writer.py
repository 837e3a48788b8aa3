"""
Delta writer: stores each uploaded record under its quarter-hour bucket.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List

from .codec import encode_record
from .records import FileRecord
from .storage.base import ObjectStore
from .storage.keys import Category, encode_key, floor_quarter

__all__ = ["DeltaWriter"]

logger = logging.getLogger(__name__)


class DeltaWriter:
    """
    Writes records as individually keyed delta objects.

    Stateless: no read-before-write and no in-memory index, so any number of
    writers can run side by side. The upload time is always passed in; the
    writer never reads a clock.

    A second upload of the same name within one quarter targets the same key
    and overwrites the first, leaving exactly one value per name per quarter.
    """

    def __init__(self, store: ObjectStore, *, compress: bool = False) -> None:
        self._store = store
        self._compress = compress

    @staticmethod
    def key_for(name: str, upload_time: datetime) -> str:
        """Object key a record named ``name`` uploaded at ``upload_time`` lands on."""
        return encode_key(
            Category.DELTA,
            upload_time.date(),
            upload_time.hour,
            floor_quarter(upload_time.minute),
            name,
        )

    def write(self, record: FileRecord, upload_time: datetime) -> str:
        """
        Store one record as a delta.

        Args:
            record: Record to store
            upload_time: When the upload happened; floored to the quarter hour

        Returns:
            Object key the record was written to

        Raises:
            InvalidKey: If the record name is unusable (before any store call)
            StoreUnavailable: If the put fails
        """
        key = self.key_for(record.name, upload_time)
        self._store.put(key, encode_record(record, compress=self._compress))
        logger.debug(f"Wrote delta {key} ({record.size} bytes)")
        return key

    def write_many(self, records: Iterable[FileRecord], upload_time: datetime) -> List[str]:
        """
        Store several records uploaded together.

        Stops at the first failing put; keys written before it stay written.
        """
        return [self.write(record, upload_time) for record in records]
