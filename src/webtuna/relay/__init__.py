"""
Rendezvous relay.

Provides the channel establishment both tunnel ends rely on: peers dial out
to the relay, which pairs them by session key and forwards their messages.
"""

from webtuna.relay.app import app, create_app, run
from webtuna.relay.broker import RelayBroker, RelaySession

__all__ = [
    "RelayBroker",
    "RelaySession",
    "app",
    "create_app",
    "run",
]
