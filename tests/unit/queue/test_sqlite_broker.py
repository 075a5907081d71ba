"""Unit tests for the SQLite message broker."""

import pytest

from vto.core.errors import QueueError
from vto.queue import SQLiteBroker


class ManualClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def broker(manual_clock: ManualClock):
    broker = SQLiteBroker(":memory:", clock=manual_clock)
    yield broker
    broker.close()


class TestLeasing:
    """Tests for receive visibility and acknowledgement."""

    def test_received_message_is_hidden(self, broker: SQLiteBroker) -> None:
        """Should hide a leased message from other receivers."""
        broker.send("one")

        first = broker.receive(visibility_timeout=60)
        second = broker.receive(visibility_timeout=60)

        assert [m.body for m in first] == ["one"]
        assert second == []

    def test_lease_expiry_redelivers(
        self, broker: SQLiteBroker, manual_clock: ManualClock
    ) -> None:
        """Should redeliver after the visibility timeout with a new count."""
        broker.send("one")
        first = broker.receive(visibility_timeout=60)

        manual_clock.now += 61
        again = broker.receive(visibility_timeout=60)

        assert again[0].message_id == first[0].message_id
        assert again[0].receive_count == 2
        assert again[0].receipt_handle != first[0].receipt_handle

    def test_delete_with_current_handle(self, broker: SQLiteBroker) -> None:
        """Should delete only with the current receipt handle."""
        broker.send("one")
        leased = broker.receive()

        assert broker.delete("stale-handle") is False
        assert broker.delete(leased[0].receipt_handle) is True
        assert broker.stats().total == 0

    def test_release_makes_visible(self, broker: SQLiteBroker) -> None:
        """Should make a released message receivable immediately."""
        broker.send("one")
        leased = broker.receive(visibility_timeout=600)

        assert broker.release(leased[0].receipt_handle) is True
        assert [m.body for m in broker.receive()] == ["one"]

    def test_release_does_not_count_as_delivery(self, broker: SQLiteBroker) -> None:
        """Should give a released message back its previous receive count."""
        broker.send("one")
        leased = broker.receive(visibility_timeout=600)
        broker.release(leased[0].receipt_handle)

        assert [m.receive_count for m in broker.receive()] == [1]

    def test_attribute_filter(self, broker: SQLiteBroker) -> None:
        """Should only claim messages whose attributes match."""
        broker.send("a", attributes={"TaskID": "a"})
        broker.send("b", attributes={"TaskID": "b"})

        claimed = broker.receive(max_messages=5, attribute_filter={"TaskID": "b"})

        assert [m.body for m in claimed] == ["b"]
        assert claimed[0].attributes == {"TaskID": "b"}

    def test_receive_waits_up_to_deadline(self, broker: SQLiteBroker) -> None:
        """Should return an empty list once the wait expires."""
        assert broker.receive(wait_seconds=0.3) == []


class TestStats:
    """Tests for stats and purge."""

    def test_stats_split_visible_and_in_flight(self, broker: SQLiteBroker) -> None:
        """Should count visible and leased messages separately."""
        for body in ("a", "b", "c"):
            broker.send(body)
        broker.receive(max_messages=1, visibility_timeout=60)

        stats = broker.stats()

        assert stats.visible == 2
        assert stats.in_flight == 1
        assert stats.total == 3

    def test_purge(self, broker: SQLiteBroker) -> None:
        """Should delete every message and report how many."""
        broker.send("a")
        broker.send("b")

        assert broker.purge() == 2
        assert broker.stats().total == 0


class TestErrors:
    """Tests for error translation."""

    def test_closed_broker_raises_queue_error(self) -> None:
        """Should surface sqlite errors as QueueError."""
        broker = SQLiteBroker(":memory:")
        broker.close()

        with pytest.raises(QueueError):
            broker.send("x")
