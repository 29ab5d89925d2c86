"""Shared models for webtuna."""

from webtuna.models.enums import LogLevel, StreamState, SupervisorState

__all__ = [
    "LogLevel",
    "StreamState",
    "SupervisorState",
]
