"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "ObjectNotFound": 1,
    "InvalidKey": 2,
    "InvalidRange": 2,
    "ValueError": 2,
    "CorruptRecord": 4,
    "StoreUnavailable": 5,
}

def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns exit codes:
    - 0: Success
    - 1: Object not found (ObjectNotFound)
    - 2: Invalid input (InvalidKey, InvalidRange, ValueError)
    - 3: Unknown error
    - 4: Stored object is corrupt (CorruptRecord)
    - 5: Object store unreachable (StoreUnavailable)

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-5, with 3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)

def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
