"""
Channel multiplexer.

Carries any number of local TCP connections over one channel. Inbound
frames are routed to local sockets by stream id; bytes read from a local
socket go out as frames tagged with its id. All table mutations happen on
the event loop that runs the channel, so one channel's state is never
touched concurrently.
"""

import asyncio
from typing import Awaitable, Callable

from webtuna.config import config
from webtuna.tunnel.channel import Channel
from webtuna.tunnel.exceptions import ChannelClosedError, MalformedFrameError
from webtuna.tunnel.local import LocalSocket
from webtuna.tunnel.protocol import CloseFrame, DataFrame, Frame, decode_frame
from webtuna.tunnel.streams import PendingEntry, ReadyEntry, StreamTable
from webtuna.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

# Opens the local socket for a stream id first seen on the channel
DialCallback = Callable[[int], Awaitable[LocalSocket | None]]


class ChannelMultiplexer:
    """
    Protocol engine for one channel.

    With a dial callback (sharing side) a data frame for an unknown id opens
    a new local connection. Without one (connecting side) ids only come from
    register_stream() and frames for unknown ids are dropped.
    """

    def __init__(
        self,
        channel: Channel,
        dial: DialCallback | None = None,
        name: str = "tunnel",
        chunk_size: int | None = None,
    ):
        """
        Initialize multiplexer.

        Args:
            channel: Channel carrying the frames
            dial: Callback opening a local socket for a new inbound id
            name: Log prefix
            chunk_size: Maximum bytes per outbound data frame
        """
        self.channel = channel
        self.table = StreamTable()
        self.name = name
        self._dial = dial
        self._chunk_size = chunk_size or config.READ_CHUNK_SIZE
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Channel Side
    # =========================================================================

    async def run(self) -> None:
        """Process channel messages until the channel closes, then tear down."""
        try:
            async for message in self.channel:
                await self.on_channel_data(message)
        finally:
            await self.on_channel_closed()

    async def on_channel_data(self, message: object) -> None:
        """Route one inbound channel message. Never raises for bad input."""
        try:
            frame = decode_frame(message)
        except MalformedFrameError as e:
            logger.warning(f"[{self.name}] Ignoring invalid data: {e}")
            return

        if self._closed:
            return

        stream_id = frame.stream_id
        entry = self.table.get(stream_id)

        if entry is None:
            entry = self._open_inbound(frame)
            if entry is None:
                return

        if isinstance(entry, PendingEntry):
            if entry.closing:
                logger.trace(
                    f"[{self.name}] Dropping frame for closing stream {stream_id}"
                )
                return
            entry.backlog.append(frame)
            entry.closing = isinstance(frame, CloseFrame)
            return

        self._deliver(stream_id, entry, frame)

    def _open_inbound(self, frame: Frame) -> PendingEntry | None:
        """Start a local dial for an id first seen on the channel."""
        stream_id = frame.stream_id

        if isinstance(frame, CloseFrame):
            logger.debug(f"[{self.name}] Close for unknown stream {stream_id} ignored")
            return None

        if self._dial is None:
            logger.debug(f"[{self.name}] Dropping frame for unknown stream {stream_id}")
            return None

        if self.table.is_retired(stream_id):
            logger.debug(f"[{self.name}] Dropping frame for closed stream {stream_id}")
            return None

        logger.info(f"[{self.name}] New incoming connection {stream_id}")
        entry = self.table.add_pending(stream_id)
        self._spawn(self._resolve(stream_id, entry.attempt_id, self._dial(stream_id)))
        return entry

    async def on_channel_closed(self) -> None:
        """Destroy every stream of this channel and clear the table."""
        if self._closed:
            return
        self._closed = True

        entries = self.table.clear()
        logger.info(f"[{self.name}] Closing all sockets ({len(entries)})")

        for stream_id, entry in entries:
            if isinstance(entry, ReadyEntry):
                self._stop_pump(entry)
                entry.socket.close()

    async def _send(self, frame: Frame) -> bool:
        """
        Send a frame on the channel.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            await self.channel.send(frame)
            return True
        except ChannelClosedError as e:
            logger.debug(
                f"[{self.name}] Failed to send on stream {frame.stream_id}: {e}"
            )
            return False
        except Exception as e:
            logger.warning(
                f"[{self.name}] Send error on stream {frame.stream_id}: {e}"
            )
            return False

    # =========================================================================
    # Stream Side
    # =========================================================================

    def register_stream(
        self,
        stream_id: int,
        socket: LocalSocket | Awaitable[LocalSocket | None],
    ) -> None:
        """
        Add a locally originated stream under a caller-chosen id.

        Args:
            stream_id: Freshly allocated id
            socket: An accepted socket or an awaitable resolving to one
        """
        if self._closed:
            logger.debug(f"[{self.name}] Channel closed, rejecting stream {stream_id}")
            if isinstance(socket, LocalSocket):
                socket.close()
            return

        entry = self.table.add_pending(stream_id)

        if isinstance(socket, LocalSocket):
            self._attach(stream_id, socket)
        else:
            self._spawn(self._resolve(stream_id, entry.attempt_id, socket))

    async def _resolve(
        self,
        stream_id: int,
        attempt_id: int,
        pending: Awaitable[LocalSocket | None],
    ) -> None:
        """Wait for a dial/accept and attach it if the id still expects it."""
        try:
            socket = await pending
        except Exception as e:
            logger.warning(f"[{self.name}] Local socket {stream_id} failed: {e}")
            socket = None

        if not self.table.is_current(stream_id, attempt_id):
            if socket is not None:
                logger.debug(f"[{self.name}] Discarding stale socket {stream_id}")
                socket.close()
            return

        if socket is None:
            entry = self.table.remove(stream_id)
            dropped = len(entry.backlog) if isinstance(entry, PendingEntry) else 0
            logger.info(
                f"[{self.name}] No local socket for stream {stream_id}, "
                f"discarded {dropped} frame(s)"
            )
            return

        self._attach(stream_id, socket)

    def _attach(self, stream_id: int, socket: LocalSocket) -> None:
        """Promote a pending id to ready and replay its backlog."""
        pending = self.table.get(stream_id)
        backlog = pending.backlog if isinstance(pending, PendingEntry) else []

        entry = self.table.promote(stream_id, socket)
        entry.pump = self._spawn(self._pump(stream_id, entry))

        for frame in backlog:
            self._deliver(stream_id, entry, frame)

    def _deliver(self, stream_id: int, entry: ReadyEntry, frame: Frame) -> None:
        """Apply an inbound frame to a ready stream."""
        if isinstance(frame, DataFrame):
            logger.trace(
                f"[{self.name}] Writing {len(frame.payload)} bytes to stream {stream_id}"
            )
            entry.socket.write(frame.payload)
            return

        if not self.table.is_current(stream_id, entry.attempt_id):
            return
        self.table.remove(stream_id)
        self._stop_pump(entry)
        entry.socket.close()
        logger.info(f"[{self.name}] Socket closed by remote side {stream_id}")

    async def _pump(self, stream_id: int, entry: ReadyEntry) -> None:
        """Forward bytes read from a local socket onto the channel."""
        socket = entry.socket
        try:
            while True:
                data = await socket.read(self._chunk_size)
                if not data:
                    break
                if not await self._send(DataFrame(stream_id, data)):
                    break
        except OSError as e:
            logger.warning(f"[{self.name}] Socket error on stream {stream_id}: {e}")
        except Exception as e:
            logger.warning(f"[{self.name}] Pump error on stream {stream_id}: {e}")
            logger.debug(format_traceback(e))

        await self._on_socket_end(stream_id, entry)

    async def _on_socket_end(self, stream_id: int, entry: ReadyEntry) -> None:
        """Local end of a stream: tell the peer and forget the id."""
        if not self.table.is_current(stream_id, entry.attempt_id):
            return

        self.table.remove(stream_id)
        entry.socket.close()
        logger.info(f"[{self.name}] Socket closed {stream_id}")
        await self._send(CloseFrame(stream_id))

    # =========================================================================
    # Task Helpers
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _stop_pump(self, entry: ReadyEntry) -> None:
        pump = entry.pump
        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
