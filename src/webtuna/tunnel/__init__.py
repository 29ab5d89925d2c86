"""
Stream multiplexing tunnel.

This package carries many independent TCP byte streams over a single
ordered message channel: frame codec, per-channel stream table, the
multiplexer engine, the connecting side's reconnect supervisor and the
sharing side's server.
"""

from webtuna.tunnel.channel import Channel, WebSocketChannel
from webtuna.tunnel.exceptions import (
    ChannelClosedError,
    ChannelError,
    MalformedFrameError,
    TunnelError,
)
from webtuna.tunnel.local import LocalListener, LocalSocket, dial_local
from webtuna.tunnel.multiplexer import ChannelMultiplexer
from webtuna.tunnel.protocol import (
    HEADER_SIZE,
    CloseFrame,
    DataFrame,
    Frame,
    decode_frame,
    encode_frame,
    frame_for,
)
from webtuna.tunnel.share import ShareServer
from webtuna.tunnel.streams import IdAllocator, StreamTable
from webtuna.tunnel.supervisor import ConnectionSupervisor

__all__ = [
    "HEADER_SIZE",
    "Channel",
    "ChannelClosedError",
    "ChannelError",
    "ChannelMultiplexer",
    "CloseFrame",
    "ConnectionSupervisor",
    "DataFrame",
    "Frame",
    "IdAllocator",
    "LocalListener",
    "LocalSocket",
    "MalformedFrameError",
    "ShareServer",
    "StreamTable",
    "TunnelError",
    "WebSocketChannel",
    "decode_frame",
    "dial_local",
    "encode_frame",
    "frame_for",
]
