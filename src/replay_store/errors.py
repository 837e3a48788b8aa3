"""
Replay store error classes.

Provides a clear taxonomy of errors that can occur while writing, compacting
and replaying records. Storage adapters map SDK exceptions onto these so that
callers handle one hierarchy regardless of the backing object store.
"""
from __future__ import annotations


class ReplayStoreError(Exception):
    """Base class for all replay store errors."""
    pass


class CorruptRecord(ReplayStoreError):
    """
    Record envelope failed to decode.

    Raised when:
    - Magic bytes or version are wrong
    - Length prefixes point past the end of the data (truncated body)
    - Trailing bytes follow the declared content
    - The compressed payload cannot be decompressed

    Bulk loads log and skip the offending object; this error is never fatal
    to a compaction or reconstruction pass.
    """

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class StoreUnavailable(ReplayStoreError):
    """
    Object store could not be reached or rejected the request.

    Raised after retries are exhausted for list/get/put/delete transport
    failures. Propagated to the caller of the current operation; compaction
    leaves the hour uncompacted so it can be retried.
    """
    pass


class ObjectNotFound(ReplayStoreError):
    """
    Requested key does not exist in the object store.

    Raised by get() on a missing key. During bulk loads an object that
    disappears between list and get is skipped like a corrupt one.
    """

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class InvalidKey(ReplayStoreError, ValueError):
    """
    Malformed filename or object key.

    Raised when:
    - A filename is empty or reduces to nothing after stripping directories
    - A key does not match the snapshot/delta layout
    - Hour or quarter values are out of range

    Always raised before any store call is made.
    """
    pass


class InvalidRange(ReplayStoreError, ValueError):
    """Requested time window is out of range or reversed."""
    pass


__all__ = [
    "ReplayStoreError",
    "CorruptRecord",
    "StoreUnavailable",
    "ObjectNotFound",
    "InvalidKey",
    "InvalidRange",
]
