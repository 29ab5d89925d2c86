"""Test doubles for channels and local sockets."""

import asyncio

from webtuna.tunnel.channel import Channel
from webtuna.tunnel.exceptions import ChannelClosedError
from webtuna.tunnel.local import LocalSocket
from webtuna.tunnel.protocol import Frame, encode_frame

_CLOSED = object()


class MemoryChannel(Channel):
    """
    In-process channel.

    Frames sent are recorded in ``sent`` and, if a peer is linked, delivered
    to it encoded exactly as they would travel over the wire.
    """

    def __init__(self, name: str = "memory"):
        self.name = name
        self.sent: list[Frame] = []
        self.peer: "MemoryChannel | None" = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @classmethod
    def pair(cls) -> tuple["MemoryChannel", "MemoryChannel"]:
        left, right = cls("left"), cls("right")
        left.peer, right.peer = right, left
        return left, right

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, message: object) -> None:
        """Queue a raw inbound message."""
        self._inbox.put_nowait(message)

    async def send(self, frame: Frame) -> None:
        if self._closed:
            raise ChannelClosedError("memory channel closed")
        self.sent.append(frame)
        if self.peer is not None:
            self.peer.deliver(encode_frame(frame))

    async def __aiter__(self):
        while True:
            message = await self._inbox.get()
            if message is _CLOSED:
                break
            yield message
        self._closed = True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_CLOSED)
        if self.peer is not None:
            await self.peer.close()


class FakeSocket(LocalSocket):
    """Local socket double recording writes and close calls."""

    def __init__(self):
        self.peer = ("127.0.0.1", 0)
        self.written = bytearray()
        self.close_calls = 0
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._closed = asyncio.Event()

    def feed(self, data: bytes) -> None:
        self._incoming.put_nowait(data)

    def feed_eof(self) -> None:
        self._incoming.put_nowait(b"")

    async def read(self, size: int) -> bytes:
        return await self._incoming.get()

    def write(self, data: bytes) -> None:
        if not self._closed.is_set():
            self.written += data

    def close(self) -> None:
        self.close_calls += 1
        self._closed.set()
        self._incoming.put_nowait(b"")

    async def wait_closed(self) -> None:
        await self._closed.wait()


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)




class FakeWebSocket:
    """
    Client websocket double.

    ``recv`` and iteration hand out the scripted messages in order; once
    they run out ``recv`` blocks forever and iteration ends as if the
    server closed the connection.
    """

    def __init__(self, messages=()):
        self.messages = list(messages)
        self.sent: list[object] = []
        self.closed = False

    async def recv(self):
        if not self.messages:
            await asyncio.Event().wait()
        return self.messages.pop(0)

    async def send(self, message) -> None:
        self.sent.append(message)

    async def __aiter__(self):
        while self.messages:
            yield self.messages.pop(0)

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Stand-in for ``websockets.connect`` returning scripted sockets."""

    def __init__(self, *sockets: "FakeWebSocket | Exception"):
        self.sockets = list(sockets)
        self.urls: list[str] = []

    async def __call__(self, url: str, **kwargs):
        self.urls.append(url)
        socket = self.sockets.pop(0)
        if isinstance(socket, Exception):
            raise socket
        return socket
