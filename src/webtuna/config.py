"""
Configuration for webtuna.

A global config instance that can be modified at runtime, before any
tunnel, relay or supervisor is started.

Usage:
    from webtuna.config import config

    config.RELAY_URL = "ws://relay.example.org:8765"
    config.LOG_LEVEL = LogLevel.DEBUG
"""

from dataclasses import dataclass

from webtuna.models.enums import LogLevel


@dataclass
class TunaConfig:
    """
    Tunnel configuration.

    Attributes:
        RELAY_URL: Base WebSocket URL of the rendezvous relay.
        RELAY_BIND_IP: Address the relay server binds to.
        RELAY_PORT: Port the relay server listens on.
        LOCAL_BIND_HOST: Address the connecting side's local listener binds to.
        SHARE_TARGET_HOST: Host the sharing side dials for every new stream.
        RECONNECT_DELAY_SECONDS: Fixed delay between channel attempts.
        CHANNEL_OPEN_TIMEOUT: Seconds to wait for the relay's CONNECTED signal.
        SESSION_ACCEPT_TIMEOUT: Seconds the relay waits for the sharer to accept.
        READ_CHUNK_SIZE: Maximum bytes read from a local socket per frame.
        KEY_LENGTH: Length of generated session keys.
        LOG_LEVEL: Logging verbosity level.
        LOG_FILE: Optional log file path.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    RELAY_URL: str = "ws://127.0.0.1:8765"
    RELAY_BIND_IP: str = "0.0.0.0"
    RELAY_PORT: int = 8765
    LOCAL_BIND_HOST: str = "127.0.0.1"
    SHARE_TARGET_HOST: str = "127.0.0.1"

    # -------------------------------------------------------------------------
    # Timing Configuration
    # -------------------------------------------------------------------------

    RECONNECT_DELAY_SECONDS: float = 2.0
    CHANNEL_OPEN_TIMEOUT: float = 10.0
    SESSION_ACCEPT_TIMEOUT: float = 10.0

    # -------------------------------------------------------------------------
    # Stream Configuration
    # -------------------------------------------------------------------------

    READ_CHUNK_SIZE: int = 65536
    KEY_LENGTH: int = 20

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    def get_relay_url(self, path: str) -> str:
        """Join a relay endpoint path onto the configured relay URL."""
        return f"{self.RELAY_URL.rstrip('/')}/{path.lstrip('/')}"


# Global config instance
config = TunaConfig()
