"""Message broker contract used by QueueBroker.

Delivery is at-least-once: a received message is hidden from other
receivers for a visibility timeout (its lease) and reappears unless it is
deleted before the lease expires.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class BrokerMessage:
    """A raw message leased from the broker."""

    message_id: str
    receipt_handle: str
    body: str
    attributes: dict[str, str] = field(default_factory=dict)
    receive_count: int = 1


@dataclass(frozen=True)
class QueueStats:
    """Approximate message counts."""

    visible: int
    in_flight: int

    @property
    def total(self) -> int:
        return self.visible + self.in_flight


class MessageBroker(Protocol):
    """Minimal message queue operations."""

    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        """Enqueue a message. Returns the broker-assigned message id."""
        ...

    def receive(
        self,
        max_messages: int = 1,
        wait_seconds: float = 0.0,
        visibility_timeout: float = 30.0,
        attribute_filter: dict[str, str] | None = None,
    ) -> list[BrokerMessage]:
        """Lease up to max_messages visible messages.

        Blocks for at most wait_seconds when nothing is visible. When
        attribute_filter is given, only messages whose attributes match
        every entry are leased.
        """
        ...

    def delete(self, receipt_handle: str) -> bool:
        """Permanently remove a leased message. False if the lease is stale."""
        ...

    def release(self, receipt_handle: str) -> bool:
        """End a lease early so the message is visible again.

        The lease is not counted as a delivery: receive_count goes back to
        its value before the receive.
        """
        ...

    def purge(self) -> int:
        """Drop every message. Returns the number removed."""
        ...

    def stats(self) -> QueueStats:
        """Return approximate visible and in-flight counts."""
        ...
