"""Tests for the sharing side server."""

import asyncio

import pytest
import websockets

from helpers import FakeConnector, FakeSocket, FakeWebSocket, MemoryChannel, settle
from webtuna.config import config
from webtuna.tunnel.exceptions import ChannelError
from webtuna.tunnel.protocol import DataFrame, encode_frame
from webtuna.tunnel.share import ShareServer


@pytest.mark.anyio
async def test_channels_are_independent():
    server = ShareServer("KEY", 9000, relay_url="ws://relay.test")
    dialed: list[FakeSocket] = []

    async def dial(stream_id: int):
        socket = FakeSocket()
        dialed.append(socket)
        return socket

    server.dial = dial
    first, second = MemoryChannel(), MemoryChannel()
    tasks = [
        asyncio.create_task(server.serve_channel("s1", first)),
        asyncio.create_task(server.serve_channel("s2", second)),
    ]
    await settle()
    assert server.active_channels == 2

    # The same stream id on two channels maps to two local connections
    first.deliver(encode_frame(DataFrame(1, b"one")))
    second.deliver(encode_frame(DataFrame(1, b"two")))
    await settle()

    assert sorted(bytes(s.written) for s in dialed) == [b"one", b"two"]

    await first.close()
    await tasks[0]
    await settle()

    assert server.active_channels == 1
    closed = [s for s in dialed if s.close_calls]
    assert [bytes(s.written) for s in closed] == [b"one"]

    await second.close()
    await tasks[1]
    assert server.active_channels == 0


@pytest.mark.anyio
async def test_control_messages(monkeypatch):
    server = ShareServer("KEY", 9000, relay_url="ws://relay.test/")
    accepted: list[str] = []

    async def fake_accept(session_id: str) -> None:
        accepted.append(session_id)

    monkeypatch.setattr(server, "_accept_channel", fake_accept)

    await server.handle_control_message("CHANNEL abc123")
    await server.handle_control_message("something else")
    await server.handle_control_message(b"CHANNEL binary")
    await settle()

    assert accepted == ["abc123"]
    assert server.relay_url == "ws://relay.test"


class TestRegistrationLoop:
    """ShareServer.run keeps the key registered with the relay."""

    @pytest.mark.anyio
    async def test_reregisters_after_error_and_after_drop(self, monkeypatch):
        connector = FakeConnector(
            FakeWebSocket(["Error: Key KEY is already shared"]),
            FakeWebSocket(["OPEN", "CHANNEL s1"]),
            OSError("Connection refused"),
        )
        monkeypatch.setattr(websockets, "connect", connector)
        delays: list[float] = []
        accepted: list[str] = []

        async def fake_sleep(delay: float) -> None:
            await asyncio.sleep(0)
            delays.append(delay)
            if len(delays) == 3:
                await server.stop()

        server = ShareServer("KEY", 9000, relay_url="ws://relay.test", sleep=fake_sleep)

        async def fake_accept(session_id: str) -> None:
            accepted.append(session_id)

        monkeypatch.setattr(server, "_accept_channel", fake_accept)

        await server.run()

        assert connector.urls == ["ws://relay.test/ws/peer/KEY"] * 3
        assert delays == [config.RECONNECT_DELAY_SECONDS] * 3
        assert accepted == ["s1"]

    @pytest.mark.anyio
    async def test_unexpected_greeting_is_an_error(self, monkeypatch):
        ws = FakeWebSocket(["HELLO"])
        monkeypatch.setattr(websockets, "connect", FakeConnector(ws))
        server = ShareServer("KEY", 9000, relay_url="ws://relay.test")

        with pytest.raises(ChannelError, match="Unexpected relay message"):
            await server._serve_control()
        assert ws.closed
