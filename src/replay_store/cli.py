"""
Replay Store CLI

Thin typer commands over the Operations facade:
- upload/download/delete/ls/presign: single-object operations
- replay: reconstruct the record set for a time window
- compact/compact-due: build hourly snapshots
- timeline: group delta references by filename timestamp
- zip: deterministic archive of stored objects
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import typer

from .cli_context import CLIContext
from .operations import OpsConfig, run_and_exit
from .operations.printers import (
    print_compaction, print_metadata, print_replay, print_timeline,
    print_upload_summary,
)

app = typer.Typer(name="replay-store", help="Time-bucketed replay store CLI")


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_date(value: str) -> date:
    """
    Parse a YYYY-MM-DD date argument.

    Raises:
        ValueError: If the value is not an ISO date
    """
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value}") from None


def _parse_datetime(value: Optional[str]) -> datetime:
    if value is None:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid timestamp (expected ISO 8601): {value}") from None


@app.command()
def upload(
    files: List[Path] = typer.Argument(..., help="Files to upload as deltas"),
    at: Optional[str] = typer.Option(None, "--at", help="Upload time (ISO 8601), defaults to now"),
) -> None:
    """Upload files into the delta bucket of their upload time."""

    def _upload() -> None:
        timestamp = _parse_datetime(at)
        ops = CLIContext.from_env().operations()
        keys = ops.upload_records([(path.name, path.read_bytes()) for path in files], timestamp)
        print_upload_summary(keys)

    run_and_exit(_upload)


@app.command()
def download(
    key: str = typer.Argument(..., help="Object key"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write content to this file"),
) -> None:
    """Download one object's decoded content."""

    def _download() -> None:
        data = CLIContext.from_env().operations().download(key)
        if out is None:
            typer.echo(data, nl=False)
        else:
            out.write_bytes(data)
            typer.echo(f"Wrote {len(data)} bytes to {out}")

    run_and_exit(_download)


@app.command()
def delete(key: str = typer.Argument(..., help="Object key")) -> None:
    """Delete one stored object."""

    def _delete() -> None:
        CLIContext.from_env().operations().delete(key)
        typer.echo(f"Deleted {key}")

    run_and_exit(_delete)


@app.command("ls")
def list_objects(prefix: str = typer.Argument("", help="Key prefix")) -> None:
    """List objects with size and modification time."""

    def _ls() -> None:
        print_metadata(CLIContext.from_env().operations().list_metadata(prefix))

    run_and_exit(_ls)


@app.command()
def presign(
    key: str = typer.Argument(..., help="Object key"),
    expires: Optional[int] = typer.Option(None, "--expires", help="Validity in seconds"),
) -> None:
    """Print a presigned GET URL for one object."""

    def _presign() -> None:
        typer.echo(CLIContext.from_env().operations().presign(key, expires))

    run_and_exit(_presign)


@app.command()
def replay(
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    start_hour: int = typer.Argument(..., help="Window start hour"),
    start_minute: int = typer.Argument(..., help="Window start minute"),
    end_hour: int = typer.Argument(..., help="Window end hour"),
    end_minute: int = typer.Argument(..., help="Window end minute"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write reconstructed files into this directory"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output"),
) -> None:
    """Reconstruct the record set as of the end of a window."""

    def _replay() -> None:
        ops = CLIContext.from_env().operations(OpsConfig(verbose=verbose))
        records = ops.reconstruct(_parse_date(day), start_hour, start_minute, end_hour, end_minute)
        if out is not None:
            out.mkdir(parents=True, exist_ok=True)
            for name, data in records.items():
                (out / name).write_bytes(data)
        print_replay(records, verbose=verbose)

    run_and_exit(_replay)


@app.command()
def compact(
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    hour: int = typer.Argument(..., help="Hour to compact (0-23)"),
) -> None:
    """Compact one hour's deltas into its snapshot."""

    def _compact() -> None:
        print_compaction(CLIContext.from_env().operations().compact_hour(_parse_date(day), hour))

    run_and_exit(_compact)


@app.command("compact-due")
def compact_due(
    now: Optional[str] = typer.Option(None, "--now", help="Clock reading (ISO 8601), defaults to now"),
    watch: bool = typer.Option(False, "--watch", help="Keep running and compact at every hour boundary"),
) -> None:
    """Compact the hour that most recently completed."""

    def _compact_due() -> None:
        scheduler = CLIContext.from_env().operations().scheduler()
        if watch:
            scheduler.run_forever()
            return
        for result in scheduler.tick(_parse_datetime(now)):
            print_compaction(result)
        if scheduler.pending:
            raise typer.Exit(5)

    run_and_exit(_compact_due)


@app.command()
def timeline(
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    start_hour: int = typer.Argument(..., help="First hour"),
    end_hour: int = typer.Argument(..., help="Last hour"),
    keys: bool = typer.Option(False, "--keys", help="Reference objects by key instead of presigned URL"),
    verbose: bool = typer.Option(False, "--verbose", help="List every reference"),
) -> None:
    """Group delta objects by the HHMM timestamp in their names."""

    def _timeline() -> None:
        ops = CLIContext.from_env().operations(OpsConfig(presign_timeline=not keys, verbose=verbose))
        print_timeline(ops.timeline(_parse_date(day), start_hour, end_hour), verbose=verbose)

    run_and_exit(_timeline)


@app.command("zip")
def zip_objects(
    keys: Optional[List[str]] = typer.Argument(None, help="Object keys to include"),
    out: Path = typer.Option(..., "--out", "-o", help="Archive path"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Include every object under this prefix"),
) -> None:
    """Write a deterministic zip of stored objects."""

    def _zip() -> None:
        if bool(keys) == (prefix is not None):
            raise ValueError("Pass either object keys or --prefix")
        ops = CLIContext.from_env().operations()
        data = ops.zip_prefix(prefix) if prefix is not None else ops.zip_keys(keys)
        out.write_bytes(data)
        typer.echo(f"Wrote {out} ({len(data)} bytes)")

    run_and_exit(_zip)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
