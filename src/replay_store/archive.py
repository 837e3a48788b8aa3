"""
Deterministic zip packaging.

Creates byte-identical zip archives from identical inputs by sorting entries
and fixing timestamps and permissions, so bulk downloads of the same keys can
be cached and compared.
"""
from __future__ import annotations

import io
import zipfile
from typing import Iterable, Tuple

from .path_safety import safe_relpath

__all__ = ["zip_entries", "FIXED_DATE_TIME"]

# Earliest timestamp the zip format can represent
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)

# -rw-r--r-- regular file
_FILE_MODE = (0o100644 & 0xFFFF) << 16


def zip_entries(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    """
    Build a deterministic zip archive in memory.

    Produces identical bytes for identical entries by:
    - Sorting entries by archive name
    - Setting every entry's timestamp to 1980-01-01 00:00:00
    - Using fixed permissions and DEFLATE compression

    Args:
        entries: (archive name, content) pairs

    Returns:
        Zip archive bytes

    Raises:
        InvalidKey: If an archive name is unsafe (absolute, '..', backslash)
        ValueError: If two entries share an archive name
    """
    normalized = sorted((safe_relpath(name), data) for name, data in entries)

    seen = set()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in normalized:
            if name in seen:
                raise ValueError(f"duplicate archive entry: {name}")
            seen.add(name)

            info = zipfile.ZipInfo(filename=name, date_time=FIXED_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = _FILE_MODE
            info.create_system = 3  # Unix
            zf.writestr(info, data)
    return buffer.getvalue()
