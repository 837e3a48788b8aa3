"""
Storage interfaces for the replay store.

These protocols define the boundary between the compaction/replay core and
object store implementations, enabling clean dependency injection and testing
with fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ObjectInfo:
    """
    Listing metadata for a stored object.

    Invariants:
    - key: full object key, never ending in '/'
    - size: stored byte length (>= 0), i.e. the envelope size, not content size
    """
    key: str
    size: int
    last_modified: Optional[datetime] = None

    @property
    def filename(self) -> str:
        return self.key.rsplit("/", 1)[-1]


__all__ = ["ObjectInfo", "ObjectStore"]


@runtime_checkable
class ObjectStore(Protocol):
    """
    Protocol for key/blob object store operations.

    Implementations are assumed read-after-write consistent per key and at
    least eventually consistent for listings.
    """

    def put(self, key: str, data: bytes) -> None:
        """
        Store an object, overwriting any existing object with the same key.

        Raises:
            StoreUnavailable: For transport errors
        """
        ...

    def get(self, key: str) -> bytes:
        """
        Retrieve object content.

        Raises:
            ObjectNotFound: If object does not exist
            StoreUnavailable: For transport errors
        """
        ...

    def list(self, prefix: str) -> List[str]:
        """
        List keys under a prefix.

        Folder placeholder keys (ending in '/') are never returned. Order is
        whatever the store provides; callers needing determinism sort.

        Raises:
            StoreUnavailable: For transport errors
        """
        ...

    def list_info(self, prefix: str) -> List[ObjectInfo]:
        """
        List keys under a prefix together with size and modification time.

        Raises:
            StoreUnavailable: For transport errors
        """
        ...

    def delete(self, key: str) -> None:
        """
        Delete an object. Deleting a missing key is not an error.

        Raises:
            StoreUnavailable: For transport errors
        """
        ...

    def presign_url(self, key: str, expires_s: int) -> str:
        """
        Build a time-limited GET URL for an object.

        Raises:
            NotImplementedError: If the store cannot sign URLs
        """
        ...
