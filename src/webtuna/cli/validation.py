"""Argument validation shared by CLI commands."""

import typer

from webtuna.cli.output import print_error, print_usage


def is_number(value: str | None) -> bool:
    """True if the string is exactly the decimal rendering of an integer."""
    if value is None:
        return False
    try:
        return value == str(int(value))
    except ValueError:
        return False


def parse_port(value: str | None, name: str) -> int:
    """
    Parse a TCP port argument.

    Raises:
        typer.Exit: With status 1 after printing usage, if invalid
    """
    if not is_number(value) or not 0 <= int(value) < 65536:
        print_error(f"Invalid {name}: {value!r}")
        print_usage()
        raise typer.Exit(1)
    return int(value)
