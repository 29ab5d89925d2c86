"""Console output helpers for the CLI."""

from rich.console import Console

console = Console()
err_console = Console(stderr=True)

USAGE_LINES = [
    "Usage:",
    "  webtuna share <source_port> [destination_key]",
    "  webtuna connect <source_key> <destination_port>",
    "  webtuna relay [--bind IP] [--port PORT]",
    "  If 'destination_key' is omitted, a random one is generated.",
]


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_usage() -> None:
    """Print the command usage to stderr."""
    for line in USAGE_LINES:
        err_console.print(line, markup=False, highlight=False)
