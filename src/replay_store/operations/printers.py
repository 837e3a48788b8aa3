"""
Human-readable output formatting.

Centralizes all CLI output formatting to enable easy addition of JSON mode
in future stages while keeping CLI commands thin and focused.
"""
from __future__ import annotations

from typing import Dict, List

import typer
from rich.console import Console
from rich.table import Table

from ..compactor import CompactionResult
from ..storage.base import ObjectInfo
from ..timeline import Timeline

_console = Console()

def print_upload_summary(keys: List[str]) -> None:
    """
    Print the keys written by an upload.

    Args:
        keys: Stored object keys in upload order
    """
    typer.echo(f"Uploaded {len(keys)} file(s)")
    for key in keys:
        typer.echo(f"  {key}")

def print_replay(records: Dict[str, bytes], verbose: bool = False) -> None:
    """
    Print a reconstructed record set.

    Args:
        records: name -> content as returned by Operations.reconstruct
        verbose: Show a per-record table
    """
    total = sum(len(data) for data in records.values())
    typer.echo(f"Records: {len(records)} ({_format_bytes(total)})")

    if verbose and records:
        table = Table(title="Replay")
        table.add_column("Name", style="cyan")
        table.add_column("Size", style="yellow", justify="right")
        for name, data in sorted(records.items()):
            table.add_row(name, _format_bytes(len(data)))
        _console.print(table)
    elif not records:
        typer.echo("No records in range")

def print_compaction(result: CompactionResult) -> None:
    """
    Print the outcome of compacting one hour.

    Args:
        result: Compaction result
    """
    label = f"{result.date} hour {result.hour:02d}"
    if not result.compacted:
        typer.echo(f"Skipped {label}: no deltas")
        return
    typer.echo(f"Compacted {label}: {result.record_count} records")
    if result.base is not None:
        typer.echo(f"Base snapshot: {result.base[0]} hour {result.base[1]:02d}")
    else:
        typer.echo("Base snapshot: none (cold start)")

def print_timeline(timeline: Timeline, verbose: bool = False) -> None:
    """
    Print a timeline grouped by timestamp.

    Args:
        timeline: Timeline view
        verbose: List every reference instead of counts
    """
    typer.echo(f"Snapshots: {len(timeline.snapshots)}")
    typer.echo(f"Frames: {len(timeline.frames)}")
    for stamp, refs in timeline.frames.items():
        typer.echo(f"  {stamp:%H:%M}  {len(refs)} object(s)")
        if verbose:
            for ref in refs:
                typer.echo(f"    {ref}")

def print_metadata(infos: List[ObjectInfo]) -> None:
    """
    Print listing metadata.

    Args:
        infos: Objects under a prefix
    """
    if not infos:
        typer.echo("No objects")
        return

    table = Table(title=f"Objects ({len(infos)})")
    table.add_column("Key", style="cyan", overflow="fold")
    table.add_column("Size", style="yellow", justify="right")
    table.add_column("Last modified", style="dim")
    for info in infos:
        modified = info.last_modified.isoformat() if info.last_modified else "-"
        table.add_row(info.key, _format_bytes(info.size), modified)
    _console.print(table)

def print_error(exc: BaseException) -> None:
    """
    Print an error to stderr.

    Args:
        exc: Exception raised by an operation
    """
    typer.echo(f"Error ({type(exc).__name__}): {exc}", err=True)

def _format_bytes(size_bytes: int) -> str:
    """
    Format byte count as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "42 KB")
    """
    if size_bytes == 0:
        return "0 B"
    elif size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
