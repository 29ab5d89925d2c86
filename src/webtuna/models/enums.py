"""
Enumeration types for webtuna.

This module defines the enumeration types shared by the tunnel, relay and
CLI layers for consistent state tracking and configuration options.
"""

from enum import Enum


# =============================================================================
# Logging
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Every frame and socket event
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"


# =============================================================================
# Tunnel State
# =============================================================================


class SupervisorState(str, Enum):
    """
    Connection supervisor lifecycle.

    State transitions:
        IDLE -> CONNECTING (start)
        CONNECTING -> OPEN (channel established)
        CONNECTING -> CLOSED (establishment error)
        OPEN -> CLOSED (channel closed)
        CLOSED -> CONNECTING (after the fixed retry delay)
        Any -> STOPPED (stop)
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    STOPPED = "stopped"


class StreamState(str, Enum):
    """
    Per-id stream state inside a stream table.

    - PENDING: Local dial/accept still in flight, inbound frames are queued
    - OPEN: Local socket attached, bytes flow both ways
    - CLOSED: Removed from the table, id retired for the channel's lifetime
    """

    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
