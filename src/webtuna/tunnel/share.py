"""
Sharing side of the tunnel.

Registers a session key with the relay and serves every channel a remote
peer opens for that key. Each channel gets its own multiplexer whose dial
callback connects to the shared local port once per new stream id.
"""

import asyncio
from typing import Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from webtuna.config import config
from webtuna.tunnel.channel import SIGNAL_ERROR_PREFIX, Channel, WebSocketChannel
from webtuna.tunnel.exceptions import ChannelError
from webtuna.tunnel.local import LocalSocket, dial_local
from webtuna.tunnel.multiplexer import ChannelMultiplexer
from webtuna.utils.logger import get_logger

logger = get_logger(__name__)

# Relay control signals
SIGNAL_OPEN = "OPEN"
SIGNAL_CHANNEL_PREFIX = "CHANNEL "


class ShareServer:
    """
    Exposes a local TCP port under a session key.

    Args:
        key: Session key remote peers connect with
        source_port: Local port every stream is dialed to
        target_host: Host the local port lives on
        relay_url: Base URL of the relay
    """

    def __init__(
        self,
        key: str,
        source_port: int,
        target_host: str | None = None,
        relay_url: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.key = key
        self.source_port = source_port
        self.target_host = target_host or config.SHARE_TARGET_HOST
        self.relay_url = (relay_url or config.RELAY_URL).rstrip("/")
        self._sleep = sleep
        self._channels: dict[str, ChannelMultiplexer] = {}
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    @property
    def active_channels(self) -> int:
        return len(self._channels)

    async def dial(self, stream_id: int) -> LocalSocket | None:
        """Connect to the shared port for a new stream."""
        return await dial_local(self.target_host, self.source_port)

    # =========================================================================
    # Control Connection
    # =========================================================================

    async def run(self) -> None:
        """Keep the key registered with the relay until stopped."""
        self._running = True
        while self._running:
            try:
                await self._serve_control()
            except ChannelError as e:
                logger.warning(f"[server] Peer error: {e}")

            if not self._running:
                break
            logger.info(
                f"[server] Re-registering in {config.RECONNECT_DELAY_SECONDS:g} seconds"
            )
            await self._sleep(config.RECONNECT_DELAY_SECONDS)

    async def stop(self) -> None:
        """Stop accepting channels and close the live ones."""
        self._running = False
        for multiplexer in list(self._channels.values()):
            await multiplexer.channel.close()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _serve_control(self) -> None:
        url = f"{self.relay_url}/ws/peer/{self.key}"
        try:
            ws = await websockets.connect(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ChannelError(f"Failed to reach relay at {url}: {e}") from e

        try:
            first_msg = await ws.recv()
            if isinstance(first_msg, str) and first_msg.startswith(SIGNAL_ERROR_PREFIX):
                raise ChannelError(first_msg[len(SIGNAL_ERROR_PREFIX) :].strip())
            if first_msg != SIGNAL_OPEN:
                raise ChannelError(f"Unexpected relay message: {first_msg!r}")

            logger.info(f"[server] Peer opened with key {self.key}")

            async for message in ws:
                await self.handle_control_message(message)

        except ConnectionClosed as e:
            logger.info(f"[server] Peer closed: {e}")
        finally:
            await ws.close()

    async def handle_control_message(self, message: object) -> None:
        """React to one relay control message."""
        if not isinstance(message, str) or not message.startswith(
            SIGNAL_CHANNEL_PREFIX
        ):
            logger.debug(f"[server] Ignoring control message: {message!r}")
            return

        session_id = message[len(SIGNAL_CHANNEL_PREFIX) :].strip()
        task = asyncio.create_task(self._accept_channel(session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # =========================================================================
    # Channels
    # =========================================================================

    async def _accept_channel(self, session_id: str) -> None:
        url = f"{self.relay_url}/ws/accept/{self.key}/{session_id}"
        try:
            channel = await WebSocketChannel.open(
                url, timeout=config.CHANNEL_OPEN_TIMEOUT, name="server"
            )
        except ChannelError as e:
            logger.warning(f"[server] Connection {session_id} failed: {e}")
            return

        logger.info(f"[server] Connection opened {session_id}")
        await self.serve_channel(session_id, channel)

    async def serve_channel(self, session_id: str, channel: Channel) -> None:
        """Multiplex one established channel until it closes."""
        multiplexer = ChannelMultiplexer(channel, dial=self.dial, name="server")
        self._channels[session_id] = multiplexer
        try:
            await multiplexer.run()
        finally:
            self._channels.pop(session_id, None)
            await channel.close()
            logger.info(f"[server] Connection closed {session_id}")
