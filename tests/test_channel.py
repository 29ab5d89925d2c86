"""Tests for the relay-backed WebSocketChannel."""

import pytest
import websockets

from helpers import FakeConnector, FakeWebSocket
from webtuna.tunnel.channel import WebSocketChannel
from webtuna.tunnel.exceptions import ChannelClosedError, ChannelError
from webtuna.tunnel.protocol import DataFrame, encode_frame

URL = "ws://relay.test/ws/connect/KEY"


class TestOpen:
    """Handshake outcomes of WebSocketChannel.open."""

    @pytest.mark.anyio
    async def test_connected_signal_opens_channel(self, monkeypatch):
        ws = FakeWebSocket(["CONNECTED"])
        connector = FakeConnector(ws)
        monkeypatch.setattr(websockets, "connect", connector)

        channel = await WebSocketChannel.open(URL, timeout=1.0)

        assert connector.urls == [URL]
        assert not channel.closed
        await channel.send(DataFrame(1, b"hi"))
        assert ws.sent == [encode_frame(DataFrame(1, b"hi"))]

    @pytest.mark.anyio
    async def test_relay_error_becomes_channel_error(self, monkeypatch):
        ws = FakeWebSocket(["Error: No peer holds key KEY"])
        monkeypatch.setattr(websockets, "connect", FakeConnector(ws))

        with pytest.raises(ChannelError, match="No peer holds key KEY"):
            await WebSocketChannel.open(URL, timeout=1.0)
        assert ws.closed

    @pytest.mark.anyio
    async def test_unexpected_first_message(self, monkeypatch):
        ws = FakeWebSocket([b"\x00\x00\x00\x01"])
        monkeypatch.setattr(websockets, "connect", FakeConnector(ws))

        with pytest.raises(ChannelError, match="Unexpected handshake message"):
            await WebSocketChannel.open(URL, timeout=1.0)
        assert ws.closed

    @pytest.mark.anyio
    async def test_handshake_timeout(self, monkeypatch):
        ws = FakeWebSocket()
        monkeypatch.setattr(websockets, "connect", FakeConnector(ws))

        with pytest.raises(ChannelError, match="Timeout"):
            await WebSocketChannel.open(URL, timeout=0.01)
        assert ws.closed

    @pytest.mark.anyio
    async def test_unreachable_relay(self, monkeypatch):
        connector = FakeConnector(OSError("Connection refused"))
        monkeypatch.setattr(websockets, "connect", connector)

        with pytest.raises(ChannelError, match="Failed to connect"):
            await WebSocketChannel.open(URL, timeout=1.0)


class TestClosedChannel:
    @pytest.mark.anyio
    async def test_send_after_close_raises(self, monkeypatch):
        monkeypatch.setattr(
            websockets, "connect", FakeConnector(FakeWebSocket(["CONNECTED"]))
        )
        channel = await WebSocketChannel.open(URL, timeout=1.0)

        await channel.close()

        assert channel.closed
        with pytest.raises(ChannelClosedError):
            await channel.send(DataFrame(1, b"late"))

    @pytest.mark.anyio
    async def test_iteration_ends_when_relay_closes(self, monkeypatch):
        ws = FakeWebSocket(["CONNECTED", b"one", b"two"])
        monkeypatch.setattr(websockets, "connect", FakeConnector(ws))
        channel = await WebSocketChannel.open(URL, timeout=1.0)

        received = [message async for message in channel]

        assert received == [b"one", b"two"]
        assert channel.closed
