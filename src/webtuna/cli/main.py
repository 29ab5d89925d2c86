"""
webtuna CLI entry point.

Usage:
    webtuna [OPTIONS] COMMAND [ARGS]...

Commands:
    share     Share a local port under a session key
    connect   Forward a local port to a shared port
    relay     Run the rendezvous relay
"""

from typing import Annotated

import typer

from webtuna.cli.commands import connect, relay, share
from webtuna.cli.output import print_usage
from webtuna.config import config
from webtuna.models.enums import LogLevel
from webtuna.utils.logger import configure_logging

app = typer.Typer(
    name="webtuna",
    help="TCP tunnel multiplexing many connections over one channel",
    no_args_is_help=False,
    rich_markup_mode="rich",
)

# Exit status the parser uses for usage errors such as unknown commands
USAGE_ERROR_EXIT_CODE = 2

# Register commands
app.add_typer(share.app, name="share", help="Share a local port")
app.add_typer(connect.app, name="connect", help="Connect to a shared port")
app.add_typer(relay.app, name="relay", help="Run the rendezvous relay")


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    relay_url: Annotated[
        str | None,
        typer.Option("--relay", "-r", help="Relay URL", envvar="WEBTUNA_RELAY"),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-l", help="Log level", envvar="WEBTUNA_LOG_LEVEL"),
    ] = LogLevel.INFO,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
):
    """
    webtuna: share a local TCP port with a peer that cannot reach it.
    """
    if ctx.invoked_subcommand is None:
        print_usage()
        raise typer.Exit(1)

    if relay_url:
        config.RELAY_URL = relay_url
    config.LOG_LEVEL = log_level
    if log_file:
        config.LOG_FILE = log_file

    configure_logging(config.LOG_LEVEL, config.LOG_FILE)


def main(argv: list[str] | None = None) -> None:
    """Console script entry; malformed invocations exit with status 1."""
    try:
        app(args=argv, prog_name="webtuna")
    except SystemExit as e:
        if e.code == USAGE_ERROR_EXIT_CODE:
            print_usage()
            raise SystemExit(1) from None
        raise
    raise SystemExit(0)


if __name__ == "__main__":
    main()
