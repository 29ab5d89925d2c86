"""
Connect command: forward a local listener to a shared port.

The connection to the sharing peer is supervised: whenever it drops, the
local listener is closed and the connection is retried after a fixed delay.

Example:
    # Reach the peer's shared port on local port 5000
    webtuna connect ABCDEFGHIJKLMNOPQRST 5000
"""

import asyncio
from typing import Annotated

import typer

from webtuna.cli.output import console, print_error, print_usage
from webtuna.cli.validation import parse_port
from webtuna.config import config
from webtuna.tunnel.channel import WebSocketChannel
from webtuna.tunnel.local import AcceptHandler, LocalListener
from webtuna.tunnel.supervisor import ConnectionSupervisor
from webtuna.utils.keys import is_valid_key
from webtuna.utils.logger import get_logger

logger = get_logger("client")

app = typer.Typer(help="Connect a local port to a shared port")


def build_supervisor(source_key: str, destination_port: int) -> ConnectionSupervisor:
    """Wire a supervisor to the relay and a local listener."""
    url = config.get_relay_url(f"/ws/connect/{source_key}")

    async def open_channel() -> WebSocketChannel:
        return await WebSocketChannel.open(
            url, timeout=config.CHANNEL_OPEN_TIMEOUT, name="client"
        )

    def make_listener(on_accept: AcceptHandler) -> LocalListener:
        return LocalListener(config.LOCAL_BIND_HOST, destination_port, on_accept)

    return ConnectionSupervisor(open_channel, make_listener, name="client")


async def run_connect(source_key: str, destination_port: int) -> None:
    """Run the supervised connection until interrupted."""
    supervisor = build_supervisor(source_key, destination_port)
    try:
        await supervisor.run()
    finally:
        await supervisor.stop()


@app.callback(invoke_without_command=True)
def connect(
    source_key: Annotated[
        str | None, typer.Argument(help="Session key of the sharing peer", show_default=False)
    ] = None,
    destination_port: Annotated[
        str | None, typer.Argument(help="Local port to listen on", show_default=False)
    ] = None,
):
    """
    Connect to a shared port.

    Opens a local listener on the destination port; each accepted connection
    becomes a separate stream to the sharing peer.
    """
    if not source_key or not is_valid_key(source_key):
        print_error(f"Invalid source_key: {source_key!r}")
        print_usage()
        raise typer.Exit(1)

    port = parse_port(destination_port, "destination_port")

    console.print(
        f"[bold green]Forwarding[/bold green] "
        f"[cyan]{config.LOCAL_BIND_HOST}:{port}[/cyan] "
        f"[dim]→[/dim] "
        f"[yellow]{source_key}[/yellow]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    logger.info(f"Connecting local port {port} to {source_key}")

    try:
        asyncio.run(run_connect(source_key, port))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
