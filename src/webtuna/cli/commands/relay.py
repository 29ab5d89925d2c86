"""Relay command: run the rendezvous relay both tunnel ends dial out to."""

from typing import Annotated

import typer

from webtuna.cli.output import console
from webtuna.config import config

app = typer.Typer(help="Run the rendezvous relay")


@app.callback(invoke_without_command=True)
def relay(
    bind: Annotated[
        str | None,
        typer.Option("--bind", "-b", help="Address to bind to"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to listen on"),
    ] = None,
):
    """Run the relay server."""
    from webtuna.relay.app import run

    host = bind or config.RELAY_BIND_IP
    port = port or config.RELAY_PORT
    console.print(f"[bold green]Relay[/bold green] listening on [cyan]{host}:{port}[/cyan]")

    try:
        run(host, port)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
