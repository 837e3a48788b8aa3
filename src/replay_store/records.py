"""
Record types shared by every replay store component.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .errors import InvalidKey

__all__ = ["FileRecord", "RecordMap"]


@dataclass(frozen=True, slots=True)
class FileRecord:
    """
    A named binary record.

    Identity for merge purposes is ``name`` alone: a record with the same
    name in a later bucket always supersedes an earlier one, regardless of
    content.
    """
    name: str        # Bare filename, no directory components
    content: bytes   # Exact bytes, never re-encoded

    def __post_init__(self) -> None:
        """Validate FileRecord constraints."""
        if not isinstance(self.name, str) or not self.name:
            raise InvalidKey("record name must be a non-empty string")
        if "/" in self.name or "\\" in self.name or self.name in (".", ".."):
            raise InvalidKey(f"record name must not contain path separators: {self.name!r}")

        if isinstance(self.content, (bytearray, memoryview)):
            object.__setattr__(self, "content", bytes(self.content))
        elif not isinstance(self.content, bytes):
            raise TypeError(f"record content must be bytes, got {type(self.content).__name__}")

    @property
    def size(self) -> int:
        return len(self.content)


# name -> record; the materialized form of a snapshot or a replay result
RecordMap = Dict[str, FileRecord]
