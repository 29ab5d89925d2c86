"""
Local TCP edges of the tunnel.

LocalSocket wraps one asyncio stream pair. dial_local opens the sockets the
sharing side needs for new stream ids, LocalListener accepts the sockets the
connecting side turns into new streams.
"""

import asyncio
from typing import Awaitable, Callable

from webtuna.utils.logger import get_logger

logger = get_logger(__name__)


class LocalSocket:
    """A local TCP connection owned by exactly one stream."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.peer = writer.get_extra_info("peername")
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; empty bytes means EOF."""
        return await self.reader.read(size)

    def write(self, data: bytes) -> None:
        """Queue bytes for the peer without waiting for the buffer to drain."""
        if self._closed.is_set() or self.writer.is_closing():
            return
        self.writer.write(data)

    def close(self) -> None:
        """
        Close after pending writes are flushed.

        The transport flushes its buffer asynchronously before shutting down.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        self.writer.close()

    async def wait_closed(self) -> None:
        """Wait until close() was called and the transport is gone."""
        await self._closed.wait()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError):
            pass


async def dial_local(host: str, port: int, timeout: float = 15.0) -> LocalSocket | None:
    """
    Open a TCP connection to a local service.

    Returns:
        The connected socket, or None if the dial failed
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"Timeout connecting to {host}:{port}")
        return None
    except OSError as e:
        logger.warning(f"Failed to connect to {host}:{port}: {e}")
        return None

    return LocalSocket(reader, writer)


AcceptHandler = Callable[[LocalSocket], Awaitable[None]]


class LocalListener:
    """TCP listener handing every accepted connection to a handler."""

    def __init__(self, host: str, port: int, on_accept: AcceptHandler):
        self.host = host
        self.port = port
        self._on_accept = on_accept
        self._server: asyncio.Server | None = None

    @property
    def sockets(self) -> list:
        return list(self._server.sockets) if self._server else []

    @property
    def bound_port(self) -> int | None:
        """Actual listening port (useful when started on port 0)."""
        for sock in self.sockets:
            return sock.getsockname()[1]
        return None

    async def start(self) -> None:
        """Bind and start accepting."""
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        logger.info(f"Local server listening on {self.host}:{self.bound_port}")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        socket = LocalSocket(reader, writer)
        try:
            await self._on_accept(socket)
        except Exception as e:
            logger.exception(f"Accept handler failed for {socket.peer}: {e}")
            socket.close()

    async def close(self) -> None:
        """Stop accepting new connections."""
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        try:
            await asyncio.wait_for(server.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError):
            pass
        logger.info(f"Local server on {self.host}:{self.port} closed")
