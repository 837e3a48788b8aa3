"""
Last-write-wins merge rule shared by compaction and replay.

Compaction and reconstruction must produce identical mappings from the same
stored objects, so both apply layers through this module only.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from .records import FileRecord, RecordMap

__all__ = ["apply_layer", "layer_all"]


def apply_layer(base: RecordMap, layer: Mapping[str, FileRecord]) -> RecordMap:
    """
    Overwrite ``base`` in place with every entry of ``layer``.

    A record in a later layer always supersedes a same-named record in an
    earlier one, regardless of content. Iteration order of ``layer`` decides
    ties inside it, so callers pass layers whose order is already
    deterministic.

    Returns:
        ``base``, for chaining
    """
    for name, record in layer.items():
        base[name] = record
    return base


def layer_all(layers: Iterable[Mapping[str, FileRecord]], base: RecordMap | None = None) -> RecordMap:
    """Apply layers oldest first onto ``base`` (or an empty mapping)."""
    result: RecordMap = dict(base) if base else {}
    for layer in layers:
        apply_layer(result, layer)
    return result
