"""Tests for stream id allocation and the stream table."""

import pytest

from helpers import FakeSocket
from webtuna.models.enums import StreamState
from webtuna.tunnel.streams import IdAllocator, PendingEntry, ReadyEntry, StreamTable


class TestIdAllocator:
    def test_starts_at_one_and_increments(self):
        allocator = IdAllocator()
        assert [allocator.allocate() for _ in range(3)] == [1, 2, 3]
        assert allocator.next_id == 4

    def test_fresh_allocator_starts_over(self):
        first = IdAllocator()
        first.allocate()
        first.allocate()
        assert IdAllocator().allocate() == 1


class TestStreamTable:
    """Tests for StreamTable bookkeeping."""

    @pytest.mark.anyio
    async def test_pending_then_ready(self):
        table = StreamTable()
        pending = table.add_pending(5)

        assert isinstance(pending, PendingEntry)
        assert table.state_of(5) == StreamState.PENDING

        ready = table.promote(5, FakeSocket())
        assert isinstance(ready, ReadyEntry)
        assert ready.attempt_id == pending.attempt_id
        assert table.state_of(5) == StreamState.OPEN

    def test_attempt_ids_are_distinct(self):
        table = StreamTable()
        first = table.add_pending(1)
        second = table.add_pending(2)
        assert first.attempt_id != second.attempt_id

    def test_is_current(self):
        table = StreamTable()
        entry = table.add_pending(1)
        assert table.is_current(1, entry.attempt_id)
        assert not table.is_current(1, entry.attempt_id + 1)
        table.remove(1)
        assert not table.is_current(1, entry.attempt_id)

    def test_removed_ids_are_retired(self):
        table = StreamTable()
        table.add_pending(1)
        table.remove(1)

        assert 1 not in table
        assert table.is_retired(1)
        assert table.state_of(1) == StreamState.CLOSED
        with pytest.raises(KeyError):
            table.add_pending(1)

    def test_duplicate_live_id_rejected(self):
        table = StreamTable()
        table.add_pending(1)
        with pytest.raises(KeyError):
            table.add_pending(1)

    def test_unknown_id_has_no_state(self):
        assert StreamTable().state_of(9) is None

    @pytest.mark.anyio
    async def test_promote_requires_pending(self):
        with pytest.raises(KeyError):
            StreamTable().promote(1, FakeSocket())

    def test_clear_returns_and_retires_everything(self):
        table = StreamTable()
        table.add_pending(1)
        table.add_pending(2)

        removed = table.clear()

        assert [stream_id for stream_id, _ in removed] == [1, 2]
        assert len(table) == 0
        assert table.is_retired(1) and table.is_retired(2)

    def test_retired_ids_do_not_accumulate(self):
        table = StreamTable()
        for stream_id in range(1, 10_001):
            table.add_pending(stream_id)
            table.remove(stream_id)

        assert len(table) == 0
        assert table._retired == set()
        assert table.is_retired(1) and table.is_retired(10_000)
        assert not table.is_retired(10_001)

    def test_out_of_order_ids_stay_usable(self):
        """An id first seen after a higher one is not mistaken for retired."""
        table = StreamTable()
        table.add_pending(2)
        table.remove(2)

        assert not table.is_retired(1)
        table.add_pending(1)
        table.remove(1)

        assert table.is_retired(1) and table.is_retired(2)
        assert table._retired == set()
