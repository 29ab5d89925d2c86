"""Tunnel exception classes."""


class TunnelError(Exception):
    """Base exception for tunnel operations."""

    pass


class MalformedFrameError(TunnelError):
    """A channel message is not a valid (stream id, payload) frame."""

    pass


class ChannelError(TunnelError):
    """The channel could not be established."""

    pass


class ChannelClosedError(ChannelError):
    """The channel is closed; nothing more can be sent on it."""

    pass
