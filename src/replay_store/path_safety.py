"""
Path safety utilities for the replay store.

This module provides shared validation for caller-provided filenames and
archive entry paths to prevent directory traversal and cross-bucket key
injection.
"""
from __future__ import annotations

from pathlib import PurePosixPath

from .errors import InvalidKey


def safe_filename(name: str) -> str:
    """
    Reduce a caller-supplied filename to its final path component.

    Uploads arrive with whatever name the client sent, which may include
    directories ("../../etc/passwd", "C:\\\\tmp\\\\x.bin", "a/b/c.bin"). Only
    the last component is kept so a record can never escape its bucket.

    Args:
        name: Caller-supplied filename

    Returns:
        Bare filename with directory components stripped

    Raises:
        InvalidKey: If nothing usable remains after stripping

    Examples:
        >>> safe_filename("doc.bin")
        'doc.bin'

        >>> safe_filename("uploads/2024/doc.bin")
        'doc.bin'

        >>> safe_filename("../../secrets")
        'secrets'

        >>> safe_filename("..")
        InvalidKey: unsafe filename: ..
    """
    if not isinstance(name, str):
        raise InvalidKey(f"filename must be a string, got {type(name).__name__}")
    base = PurePosixPath(name.replace("\\", "/")).name
    if not base or base in (".", "..") or "\x00" in base:
        raise InvalidKey(f"unsafe filename: {name}")
    return base


def safe_relpath(path: str) -> str:
    """
    Validate and normalize a relative path used inside an archive.

    This function enforces the following safety rules:
    - No empty strings or "." (prevents root directory access)
    - No absolute paths (starting with '/')
    - No parent directory references ('..' components)
    - No backslashes

    Args:
        path: Relative path string

    Returns:
        Normalized relative path safe for use

    Raises:
        InvalidKey: If path violates safety rules
    """
    rel = PurePosixPath(path)
    s = str(rel)
    if not s or s == ".":
        raise InvalidKey(f"unsafe path: {path}")
    if "\\" in s:
        raise InvalidKey(f"unsafe path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise InvalidKey(f"unsafe path: {path}")
    return s


__all__ = ["safe_filename", "safe_relpath"]
