"""
Share command: expose a local TCP port under a session key.

Example:
    # Share local port 9000 under a generated key
    webtuna share 9000

    # Share under a chosen key
    webtuna share 9000 my_key
"""

import asyncio
from typing import Annotated

import typer

from webtuna.cli.output import console, print_error, print_usage
from webtuna.cli.validation import parse_port
from webtuna.config import TunaConfig, config
from webtuna.tunnel.share import ShareServer
from webtuna.utils.keys import create_id, is_valid_key
from webtuna.utils.logger import get_logger

logger = get_logger("server")

app = typer.Typer(help="Share a local port with a remote peer")


async def run_share(key: str, source_port: int) -> None:
    """Serve the shared port until interrupted."""
    server = ShareServer(key, source_port)
    try:
        await server.run()
    finally:
        await server.stop()


@app.callback(invoke_without_command=True)
def share(
    source_port: Annotated[
        str | None, typer.Argument(help="Local port to share", show_default=False)
    ] = None,
    destination_key: Annotated[
        str | None,
        typer.Argument(help="Session key (generated if omitted)", show_default=False),
    ] = None,
):
    """
    Share a local TCP port.

    Every connection a remote peer opens through the key is forwarded to
    the given local port.
    """
    port = parse_port(source_port, "source_port")

    key = destination_key or create_id(config.KEY_LENGTH)
    if not is_valid_key(key):
        print_error(f"Invalid key: {key!r}")
        print_usage()
        raise typer.Exit(1)

    relay_option = ""
    if config.RELAY_URL != TunaConfig.RELAY_URL:
        relay_option = f"--relay '{config.RELAY_URL}' "

    console.print(f"To access your port {port}, run on the client machine:")
    console.print(
        f"  webtuna {relay_option}connect '{key}' <LOCAL_PORT>",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
    console.print()

    logger.info(f"Sharing port {port} with key {key}")

    try:
        asyncio.run(run_share(key, port))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
