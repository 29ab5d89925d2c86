"""
Rendezvous state for the relay.

Tracks which session keys have a sharing peer attached and the sessions
waiting for that peer to accept them.
"""

import asyncio
import uuid
from dataclasses import dataclass, field

from fastapi import WebSocket

from webtuna.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RelaySession:
    """One connector waiting for, or paired with, a sharing peer."""

    session_id: str
    key: str
    acceptor: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )
    done: asyncio.Event = field(default_factory=asyncio.Event)


class RelayBroker:
    """
    Pairs connectors with sharing peers by key.

    Provides methods for:
    - Registering/unregistering a sharing peer under a key
    - Opening a session for a connector and notifying the peer
    - Attaching the peer's data connection to a waiting session
    """

    def __init__(self):
        self._peers: dict[str, WebSocket] = {}
        self._sessions: dict[str, RelaySession] = {}
        self._lock = asyncio.Lock()

    def has_peer(self, key: str) -> bool:
        return key in self._peers

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def register_peer(self, key: str, ws: WebSocket) -> bool:
        """
        Register a sharing peer.

        Returns:
            False if the key is already held by another peer
        """
        async with self._lock:
            if key in self._peers:
                logger.warning(f"[Relay] Key {key} already registered")
                return False
            self._peers[key] = ws
            logger.info(f"[Relay] Registered peer {key}")
            return True

    async def unregister_peer(self, key: str, ws: WebSocket) -> None:
        """Remove a peer, unless the key was taken over meanwhile."""
        async with self._lock:
            if self._peers.get(key) is ws:
                del self._peers[key]
                logger.info(f"[Relay] Unregistered peer {key}")

    async def open_session(self, key: str) -> RelaySession | None:
        """
        Create a session for a connector and ask the peer to accept it.

        Returns:
            The session, or None if no peer holds the key
        """
        async with self._lock:
            peer_ws = self._peers.get(key)
            if peer_ws is None:
                return None
            session = RelaySession(session_id=uuid.uuid4().hex, key=key)
            self._sessions[session.session_id] = session

        try:
            await peer_ws.send_text(f"CHANNEL {session.session_id}")
        except Exception as e:
            logger.warning(f"[Relay] Failed to notify peer {key}: {e}")
            self.close_session(session)
            return None

        logger.info(
            f"[Relay] Session {session.session_id} opened for {key}"
            f" ({self.active_sessions} active)"
        )
        return session

    def accept_session(self, key: str, session_id: str, ws: WebSocket) -> RelaySession | None:
        """Attach the peer's data connection to a waiting session."""
        session = self._sessions.get(session_id)
        if session is None or session.key != key or session.acceptor.done():
            return None
        session.acceptor.set_result(ws)
        return session

    def close_session(self, session: RelaySession) -> None:
        """Forget a session and release its acceptor."""
        self._sessions.pop(session.session_id, None)
        if not session.acceptor.done():
            session.acceptor.cancel()
        session.done.set()
