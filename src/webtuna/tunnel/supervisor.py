"""
Connection supervisor for the connecting side.

Owns the channel lifecycle: connect, serve a local listener through a fresh
multiplexer while the channel is open, tear everything down when it closes,
wait a fixed delay and connect again. There is no backoff and no retry
limit; the loop runs until stop() is called or the process exits.
"""

import asyncio
from typing import Awaitable, Callable

from webtuna.config import config
from webtuna.models.enums import SupervisorState
from webtuna.tunnel.channel import Channel
from webtuna.tunnel.exceptions import ChannelError
from webtuna.tunnel.local import AcceptHandler, LocalListener, LocalSocket
from webtuna.tunnel.multiplexer import ChannelMultiplexer
from webtuna.tunnel.streams import IdAllocator
from webtuna.utils.logger import get_logger

logger = get_logger(__name__)

ChannelFactory = Callable[[], Awaitable[Channel]]
ListenerFactory = Callable[[AcceptHandler], LocalListener]


class ConnectionSupervisor:
    """
    Keeps one channel to the sharing peer alive and serves a local listener.

    Args:
        open_channel: Coroutine factory establishing a new channel
        make_listener: Builds the (not yet started) local listener for a channel
        retry_delay: Fixed delay before every reconnect
        sleep: Sleep function, replaceable in tests
        name: Log prefix
    """

    def __init__(
        self,
        open_channel: ChannelFactory,
        make_listener: ListenerFactory,
        retry_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "client",
    ):
        self._open_channel = open_channel
        self._make_listener = make_listener
        self.retry_delay = (
            config.RECONNECT_DELAY_SECONDS if retry_delay is None else retry_delay
        )
        self._sleep = sleep
        self.name = name

        self.state = SupervisorState.IDLE
        self.sessions = 0
        self.multiplexer: ChannelMultiplexer | None = None
        self.allocator: IdAllocator | None = None
        self._channel: Channel | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    def _set_state(self, state: SupervisorState) -> None:
        logger.debug(f"[{self.name}] {self.state.value} -> {state.value}")
        self.state = state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Run the supervisor loop in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop retrying and close the current channel, if any."""
        self._running = False
        if self._channel is not None:
            await self._channel.close()

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._set_state(SupervisorState.STOPPED)

    async def run(self) -> None:
        """Connect, serve and reconnect until stopped."""
        self._running = True
        while self._running:
            await self.run_once()
            if not self._running:
                break
            logger.info(f"[{self.name}] Retrying connection in {self.retry_delay:g} seconds")
            await self._sleep(self.retry_delay)

    async def run_once(self) -> None:
        """One Connecting -> Open -> Closed cycle, without the retry delay."""
        self._set_state(SupervisorState.CONNECTING)

        try:
            channel = await self._open_channel()
        except ChannelError as e:
            logger.warning(f"[{self.name}] Connection error: {e}")
            self._set_state(SupervisorState.CLOSED)
            return

        self._channel = channel
        self.sessions += 1
        self._set_state(SupervisorState.OPEN)
        logger.info(f"[{self.name}] Connected to remote peer")

        try:
            await self._serve(channel)
        finally:
            self._channel = None
            self._set_state(SupervisorState.CLOSED)
            logger.info(f"[{self.name}] Connection closed")

    async def _serve(self, channel: Channel) -> None:
        """Serve one open channel until it closes."""
        multiplexer = ChannelMultiplexer(channel, name=self.name)
        allocator = IdAllocator()
        self.multiplexer = multiplexer
        self.allocator = allocator

        async def on_accept(socket: LocalSocket) -> None:
            stream_id = allocator.allocate()
            logger.info(f"[{self.name}] New incoming connection {stream_id}")
            multiplexer.register_stream(stream_id, socket)
            await socket.wait_closed()

        listener = self._make_listener(on_accept)
        try:
            await listener.start()
        except OSError as e:
            logger.error(f"[{self.name}] Failed to start local server: {e}")
            await channel.close()
            await multiplexer.on_channel_closed()
            return

        try:
            await multiplexer.run()
        finally:
            logger.info(f"[{self.name}] Closing local server")
            await listener.close()
            await channel.close()
