"""Task-level queue operations on top of a MessageBroker.

QueueBroker speaks in QueueMessage objects: it encodes on send, decodes on
receive (canonical shape first, then storage events), and can hunt down a
still-queued message by task id for cancellation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vto.core.errors import QueueError, ValidationError
from vto.domain import QueueMessage
from vto.queue.interface import BrokerMessage, MessageBroker, QueueStats
from vto.queue.messages import (
    DEFAULT_EVENT_TRANSCODE_TYPES,
    decode_message,
    encode_message,
)

logger = logging.getLogger(__name__)

# Out-of-band attribute carrying the task id of every sent message
TASK_ID_ATTRIBUTE = "TaskID"

DEFAULT_VISIBILITY_TIMEOUT = 900.0

# remove_by_task_id inspects at most this many visible messages
REMOVE_BATCH_SIZE = 10
REMOVE_VISIBILITY_TIMEOUT = 30.0


@dataclass(frozen=True)
class ReceivedMessage:
    """A leased message with its decoded payload."""

    receipt_handle: str
    message_id: str
    message: QueueMessage
    receive_count: int = 1


class QueueBroker:
    """Enqueue, lease, acknowledge, and remove transcode work.

    Errors from the underlying broker surface as QueueError and are never
    retried here.
    """

    def __init__(
        self,
        broker: MessageBroker,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
        default_event_types: tuple[str, ...] = DEFAULT_EVENT_TRANSCODE_TYPES,
    ) -> None:
        """Initialize the queue.

        Args:
            broker: Underlying message broker.
            visibility_timeout: Lease length for received messages (seconds).
            default_event_types: Transcode types given to messages translated
                from storage-creation events.
        """
        self._broker = broker
        self._visibility_timeout = visibility_timeout
        self._default_event_types = default_event_types

    def send(self, message: QueueMessage) -> str:
        """Enqueue a message, tagging it with its task id.

        Returns:
            The broker-assigned message id.
        """
        message_id = self._broker.send(
            encode_message(message),
            attributes={TASK_ID_ATTRIBUTE: message.task_id},
        )
        logger.info("Queued task %s as message %s", message.task_id, message_id)
        return message_id

    def receive(
        self, max_messages: int = 1, wait_seconds: float = 0.0
    ) -> list[ReceivedMessage]:
        """Lease up to max_messages and decode them.

        Bodies that cannot be decoded (including storage events for
        non-video keys) are logged and deleted so they are not redelivered.
        """
        raw_messages = self._broker.receive(
            max_messages=max_messages,
            wait_seconds=wait_seconds,
            visibility_timeout=self._visibility_timeout,
        )
        received: list[ReceivedMessage] = []
        for raw in raw_messages:
            try:
                message = decode_message(raw.body, self._default_event_types)
            except ValidationError as e:
                logger.warning("Discarding message %s: %s", raw.message_id, e)
                self._discard(raw)
                continue
            received.append(
                ReceivedMessage(
                    receipt_handle=raw.receipt_handle,
                    message_id=raw.message_id,
                    message=message,
                    receive_count=raw.receive_count,
                )
            )
        return received

    def delete(self, receipt_handle: str) -> bool:
        """Acknowledge a message so it is never redelivered."""
        return self._broker.delete(receipt_handle)

    def purge(self) -> int:
        """Drop every queued message. Returns the number removed."""
        return self._broker.purge()

    def status(self) -> QueueStats:
        """Approximate visible and in-flight message counts."""
        return self._broker.stats()

    def remove_by_task_id(self, task_id: str) -> bool:
        """Best-effort removal of a still-queued message for a task.

        Looks first for a visible message whose TaskID attribute matches,
        then inspects the decoded bodies of a bounded batch of visible
        messages (covering messages sent without the attribute). Messages
        that do not match are released back to the queue.

        Returns:
            True if a matching message was found and deleted. False is not
            an error: the message may be leased by a worker or already
            processed.
        """
        tagged = self._broker.receive(
            max_messages=1,
            wait_seconds=0.0,
            visibility_timeout=REMOVE_VISIBILITY_TIMEOUT,
            attribute_filter={TASK_ID_ATTRIBUTE: task_id},
        )
        for raw in tagged:
            self._broker.delete(raw.receipt_handle)
            logger.info(
                "Removed queued message %s for task %s", raw.message_id, task_id
            )
            return True

        batch = self._broker.receive(
            max_messages=REMOVE_BATCH_SIZE,
            wait_seconds=0.0,
            visibility_timeout=REMOVE_VISIBILITY_TIMEOUT,
        )
        found = False
        for raw in batch:
            if not found and self._matches(raw, task_id):
                self._broker.delete(raw.receipt_handle)
                logger.info(
                    "Removed queued message %s for task %s", raw.message_id, task_id
                )
                found = True
            else:
                self._broker.release(raw.receipt_handle)
        if not found:
            logger.info("No queued message found for task %s", task_id)
        return found

    def _matches(self, raw: BrokerMessage, task_id: str) -> bool:
        if raw.attributes.get(TASK_ID_ATTRIBUTE) == task_id:
            return True
        try:
            decoded = decode_message(raw.body, self._default_event_types)
        except ValidationError:
            return False
        return decoded.task_id == task_id

    def _discard(self, raw: BrokerMessage) -> None:
        try:
            self._broker.delete(raw.receipt_handle)
        except QueueError as e:
            logger.warning(
                "Failed to delete undecodable message %s: %s", raw.message_id, e
            )
