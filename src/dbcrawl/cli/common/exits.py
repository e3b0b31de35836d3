"""Exit handling utilities for the CLI.

Exit codes: 0 success, 1 crawl failure, 2 invalid input or configuration.
"""

from typing import NoReturn

import typer

from dbcrawl.cli.common.output import out
from dbcrawl.core.errors import ConfigurationError

EXIT_FAILURE = 1
EXIT_USAGE = 2


def exit_code_for(exc: Exception) -> int:
    """Return the exit code for an exception raised by dbcrawl.core."""
    if isinstance(exc, ConfigurationError):
        return EXIT_USAGE
    return EXIT_FAILURE


def exit_from_exc(
    exc: Exception, *, message: str | None = None, code: int | None = None
) -> NoReturn:
    """
    Print an error message for an exception and exit.

    The message defaults to the exception text and the code to
    `exit_code_for(exc)`.
    """
    out.error(message or str(exc))
    raise typer.Exit(exit_code_for(exc) if code is None else code) from exc
