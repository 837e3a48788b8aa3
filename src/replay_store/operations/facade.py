"""
Operations Facade - Application service layer.

Provides a clean interface between transports (CLI, HTTP) and the replay
core, centralizing component wiring and configuration policy while keeping
callers thin and testable.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..archive import zip_entries
from ..buckets import BucketLoader
from ..codec import decode_record
from ..compactor import CompactionResult, SnapshotCompactor
from ..delta_writer import DeltaWriter
from ..errors import CorruptRecord
from ..path_safety import safe_filename
from ..records import FileRecord
from ..reconstructor import ReplayReconstructor
from ..scheduler import CompactionScheduler
from ..settings import Settings
from ..storage.base import ObjectInfo, ObjectStore
from ..timeline import Timeline, TimelineBuilder, key_reference, presigned_reference


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions that are not storage settings.
    """
    presign_timeline: bool = True   # Hand out presigned URLs instead of raw keys
    human: bool = True              # Human text output (JSON mode in future)
    verbose: bool = False           # Show detailed output


class Operations:
    """
    Application service facade for replay store operations.

    Design Notes: Operations Facade

    One method per outward operation. Components are stateless and built
    once from the injected store and settings; the facade itself keeps no
    per-request state, so one instance can serve concurrent callers.
    Exceptions bubble up for central mapping by the transport.
    """

    def __init__(self, config: OpsConfig, store: ObjectStore, settings: Settings):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            store: Object store adapter (fakes in tests)
            settings: Storage and replay settings
        """
        self.cfg = config
        self.store = store
        self.settings = settings

        self.loader = BucketLoader(store, workers=settings.fetch_workers)
        self.writer = DeltaWriter(store, compress=settings.compress_records)
        self.compactor = SnapshotCompactor(
            store,
            self.loader,
            lookback_hours=settings.lookback_hours,
            compress=settings.compress_records,
        )
        self.reconstructor = ReplayReconstructor(self.loader, lookback_hours=settings.lookback_hours)

        reference = (
            presigned_reference(store, settings.presign_ttl_s)
            if config.presign_timeline else key_reference
        )
        self.timelines = TimelineBuilder(store, reference=reference)

    def upload_record(self, name: str, data: bytes, timestamp: datetime) -> str:
        """
        Store one uploaded file as a delta.

        Args:
            name: Client filename; directory components are stripped
            data: File bytes
            timestamp: Upload time

        Returns:
            Stored object key
        """
        return self.writer.write(FileRecord(name=safe_filename(name), content=data), timestamp)

    def upload_records(self, files: Iterable[Tuple[str, bytes]], timestamp: datetime) -> List[str]:
        """Store several files uploaded in one request; stops at the first failure."""
        return [self.upload_record(name, data, timestamp) for name, data in files]

    def reconstruct(
        self, day: date, start_hour: int, start_minute: int, end_hour: int, end_minute: int
    ) -> Dict[str, bytes]:
        """Reconstruct the record set as of the end of a window, as name -> bytes."""
        records = self.reconstructor.reconstruct(day, start_hour, start_minute, end_hour, end_minute)
        return {name: record.content for name, record in sorted(records.items())}

    def compact_hour(self, day: date, hour: int) -> CompactionResult:
        """Compact one completed hour into its snapshot."""
        return self.compactor.compact_hour(day, hour)

    def scheduler(self) -> CompactionScheduler:
        """Build a scheduler driving this facade's compactor."""
        return CompactionScheduler(self.compactor)

    def timeline(self, day: date, start_hour: int, end_hour: int) -> Timeline:
        """Timeline of delta references plus the day's snapshot references."""
        return self.timelines.timeline(day, start_hour, end_hour)

    def download(self, key: str) -> bytes:
        """
        Fetch one stored object and return the record content.

        Raises:
            ObjectNotFound: If the key does not exist
            CorruptRecord: If the object is not a valid envelope
        """
        try:
            return decode_record(self.store.get(key)).content
        except CorruptRecord as e:
            e.key = key
            raise

    def delete(self, key: str) -> None:
        """Delete one stored object. Compaction never deletes; this is explicit only."""
        self.store.delete(key)

    def list_metadata(self, prefix: str) -> List[ObjectInfo]:
        """List objects under a prefix (a trailing '/' is added when missing)."""
        return self.store.list_info(_normalize_prefix(prefix))

    def presign(self, key: str, expires_s: Optional[int] = None) -> str:
        return self.store.presign_url(key, expires_s or self.settings.presign_ttl_s)

    def zip_keys(self, keys: Iterable[str]) -> bytes:
        """Zip the decoded content of the given keys, entries named by filename."""
        return zip_entries((key.rsplit("/", 1)[-1], self.download(key)) for key in keys)

    def zip_prefix(self, prefix: str) -> bytes:
        """Zip every object under a prefix, keeping paths relative to the prefix."""
        base = _normalize_prefix(prefix)
        keys = sorted(self.store.list(base))
        return zip_entries((key[len(base):], self.download(key)) for key in keys)


def _normalize_prefix(prefix: str) -> str:
    if not prefix or prefix.endswith("/"):
        return prefix
    return prefix + "/"
