"""
Stream bookkeeping for one channel.

A StreamTable maps stream ids to entries. An entry is either pending (a
local dial/accept is still in flight and inbound frames are queued) or
ready (the local socket is attached). Every entry carries the attempt id
that created it, so a resolution can tell whether the table still points
at its own attempt or has moved on.
"""

import asyncio
import itertools
from dataclasses import dataclass, field

from webtuna.models.enums import StreamState
from webtuna.tunnel.local import LocalSocket
from webtuna.tunnel.protocol import Frame

# =============================================================================
# Id Allocation
# =============================================================================


class IdAllocator:
    """Monotonic stream id counter for the side that accepts local sockets."""

    def __init__(self, start: int = 1):
        self._next_id = start

    def allocate(self) -> int:
        """Allocate the next stream id."""
        stream_id = self._next_id
        self._next_id += 1
        return stream_id

    @property
    def next_id(self) -> int:
        return self._next_id


# =============================================================================
# Entries
# =============================================================================


@dataclass
class PendingEntry:
    """Local socket not resolved yet; frames wait in ``backlog``."""

    attempt_id: int
    backlog: list[Frame] = field(default_factory=list)
    closing: bool = False

    @property
    def state(self) -> StreamState:
        return StreamState.PENDING


@dataclass
class ReadyEntry:
    """Local socket attached to the stream."""

    attempt_id: int
    socket: LocalSocket
    pump: asyncio.Task | None = None

    @property
    def state(self) -> StreamState:
        return StreamState.OPEN


StreamEntry = PendingEntry | ReadyEntry


# =============================================================================
# Stream Table
# =============================================================================


class StreamTable:
    """
    Live id -> entry mapping, scoped to a single channel.

    Ids that leave the table are retired: they are never reopened for the
    rest of the channel's lifetime. Retired ids are kept as a floor (every
    id from 1 up to it is retired) plus the few retired ids above the floor,
    so a long-lived channel does not grow with every stream it carried.
    """

    def __init__(self):
        self._entries: dict[int, StreamEntry] = {}
        self._retired_floor = 0
        self._retired: set[int] = set()
        self._attempts = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, stream_id: int) -> bool:
        return stream_id in self._entries

    def get(self, stream_id: int) -> StreamEntry | None:
        return self._entries.get(stream_id)

    def ids(self) -> list[int]:
        return list(self._entries)

    def state_of(self, stream_id: int) -> StreamState | None:
        """Current state of an id, or None if it was never seen."""
        entry = self._entries.get(stream_id)
        if entry is not None:
            return entry.state
        if self.is_retired(stream_id):
            return StreamState.CLOSED
        return None

    def is_retired(self, stream_id: int) -> bool:
        return 0 < stream_id <= self._retired_floor or stream_id in self._retired

    def _retire(self, stream_id: int) -> None:
        if self.is_retired(stream_id):
            return
        self._retired.add(stream_id)
        while self._retired_floor + 1 in self._retired:
            self._retired_floor += 1
            self._retired.remove(self._retired_floor)

    def add_pending(self, stream_id: int) -> PendingEntry:
        """
        Register a placeholder for an in-flight dial/accept.

        Raises:
            KeyError: If the id is live or retired
        """
        if stream_id in self._entries or self.is_retired(stream_id):
            raise KeyError(f"Stream id {stream_id} already used")

        entry = PendingEntry(attempt_id=next(self._attempts))
        self._entries[stream_id] = entry
        return entry

    def is_current(self, stream_id: int, attempt_id: int) -> bool:
        """Whether the id still maps to the given attempt."""
        entry = self._entries.get(stream_id)
        return entry is not None and entry.attempt_id == attempt_id

    def promote(self, stream_id: int, socket: LocalSocket) -> ReadyEntry:
        """
        Replace a pending entry by a ready one for the same attempt.

        Raises:
            KeyError: If the id is not pending
        """
        entry = self._entries.get(stream_id)
        if not isinstance(entry, PendingEntry):
            raise KeyError(f"Stream id {stream_id} is not pending")

        ready = ReadyEntry(attempt_id=entry.attempt_id, socket=socket)
        self._entries[stream_id] = ready
        return ready

    def remove(self, stream_id: int) -> StreamEntry | None:
        """Remove and retire an id."""
        self._retire(stream_id)
        return self._entries.pop(stream_id, None)

    def clear(self) -> list[tuple[int, StreamEntry]]:
        """Remove every live entry, returning what was removed."""
        entries = list(self._entries.items())
        for stream_id in self._entries:
            self._retire(stream_id)
        self._entries.clear()
        return entries
