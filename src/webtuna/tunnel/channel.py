"""
Channel abstraction.

A Channel is the ordered, reliable message transport that carries all
multiplexed frames between two peers. Iterating a channel yields raw
messages until it closes; ``send`` encodes and transmits one frame.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from webtuna.tunnel.exceptions import ChannelClosedError, ChannelError
from webtuna.tunnel.protocol import Frame, encode_frame
from webtuna.utils.logger import get_logger

logger = get_logger(__name__)

# Relay handshake signals
SIGNAL_CONNECTED = "CONNECTED"
SIGNAL_ERROR_PREFIX = "Error:"


class Channel(ABC):
    """Ordered message transport between two peers."""

    name: str = "channel"

    @abstractmethod
    async def send(self, frame: Frame) -> None:
        """
        Send one frame.

        Raises:
            ChannelClosedError: If the channel is closed
        """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[object]:
        """Yield raw inbound messages until the channel closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the channel."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the channel is closed."""


class WebSocketChannel(Channel):
    """Channel carried by one relayed WebSocket connection."""

    def __init__(self, ws, name: str = "channel"):
        self._ws = ws
        self._closed = False
        self.name = name

    @classmethod
    async def open(
        cls, url: str, timeout: float = 10.0, name: str = "channel"
    ) -> "WebSocketChannel":
        """
        Connect to a relay endpoint and wait for the CONNECTED signal.

        Raises:
            ChannelError: If the connection or the handshake fails
        """
        try:
            ws = await websockets.connect(url, max_size=None)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ChannelError(f"Failed to connect to {url}: {e}") from e

        try:
            first_msg = await asyncio.wait_for(ws.recv(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await ws.close()
            raise ChannelError("Timeout waiting for remote peer") from e
        except ConnectionClosed as e:
            raise ChannelError(f"Relay closed the connection: {e}") from e

        if first_msg == SIGNAL_CONNECTED:
            logger.debug(f"[{name}] Channel established via {url}")
            return cls(ws, name=name)

        await ws.close()
        if isinstance(first_msg, str) and first_msg.startswith(SIGNAL_ERROR_PREFIX):
            raise ChannelError(first_msg[len(SIGNAL_ERROR_PREFIX) :].strip())
        raise ChannelError(f"Unexpected handshake message: {first_msg!r}")

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: Frame) -> None:
        if self._closed:
            raise ChannelClosedError("Channel is closed")
        try:
            await self._ws.send(encode_frame(frame))
        except ConnectionClosed as e:
            self._closed = True
            raise ChannelClosedError(f"Channel closed: {e}") from e

    async def __aiter__(self) -> AsyncIterator[object]:
        try:
            async for message in self._ws:
                yield message
        except ConnectionClosed as e:
            logger.debug(f"[{self.name}] Channel connection lost: {e}")
        finally:
            self._closed = True

    async def close(self) -> None:
        self._closed = True
        try:
            await self._ws.close()
        except (OSError, WebSocketException):
            pass
