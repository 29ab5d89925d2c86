"""
Tunnel frame definitions and wire codec.

Wire format (binary, big-endian), one frame per channel message:
┌──────────────────┬─────────────────────┐
│ Stream ID (4B)   │  Payload (var)      │
└──────────────────┴─────────────────────┘

A message holding only the header is an end-of-stream marker for that id.
"""

import struct
from dataclasses import dataclass

from webtuna.tunnel.exceptions import MalformedFrameError

# =============================================================================
# Header Format
# =============================================================================

HEADER_FORMAT = ">I"  # Big-endian uint32 stream id
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 4 bytes

MAX_STREAM_ID = 0xFFFFFFFF


# =============================================================================
# Frames
# =============================================================================


@dataclass(frozen=True, slots=True)
class DataFrame:
    """Payload bytes for one stream."""

    stream_id: int
    payload: bytes


@dataclass(frozen=True, slots=True)
class CloseFrame:
    """End of stream for one id."""

    stream_id: int


Frame = DataFrame | CloseFrame


def frame_for(stream_id: int, payload: bytes | None = None) -> Frame:
    """Build the frame for a logical ``[stream_id, payload?]`` pair."""
    if payload:
        return DataFrame(stream_id, bytes(payload))
    return CloseFrame(stream_id)


def encode_frame(frame: Frame) -> bytes:
    """
    Encode a frame into one channel message.

    Args:
        frame: DataFrame or CloseFrame

    Returns:
        Header followed by the payload (no payload for CloseFrame)

    Raises:
        ValueError: If the stream id does not fit the header
    """
    if not 0 <= frame.stream_id <= MAX_STREAM_ID:
        raise ValueError(f"Stream id out of range: {frame.stream_id}")

    header = struct.pack(HEADER_FORMAT, frame.stream_id)
    if isinstance(frame, DataFrame):
        return header + frame.payload
    return header


def decode_frame(message: object) -> Frame:
    """
    Decode one channel message.

    Args:
        message: Raw message as delivered by the channel

    Returns:
        DataFrame if payload bytes follow the header, CloseFrame otherwise

    Raises:
        MalformedFrameError: If the message is not a binary frame
    """
    if isinstance(message, (bytearray, memoryview)):
        message = bytes(message)

    if not isinstance(message, bytes):
        raise MalformedFrameError(
            f"Expected binary frame, got {type(message).__name__}"
        )

    if len(message) < HEADER_SIZE:
        raise MalformedFrameError(f"Frame too short (len={len(message)})")

    (stream_id,) = struct.unpack(HEADER_FORMAT, message[:HEADER_SIZE])
    return frame_for(stream_id, message[HEADER_SIZE:])
