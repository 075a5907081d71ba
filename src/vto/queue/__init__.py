"""Work queue for transcode tasks."""

from vto.queue.broker import TASK_ID_ATTRIBUTE, QueueBroker, ReceivedMessage
from vto.queue.interface import BrokerMessage, MessageBroker, QueueStats
from vto.queue.messages import decode_message, encode_message, is_video_key
from vto.queue.sqlite_broker import SQLiteBroker

__all__ = [
    "TASK_ID_ATTRIBUTE",
    "BrokerMessage",
    "MessageBroker",
    "QueueBroker",
    "QueueStats",
    "ReceivedMessage",
    "SQLiteBroker",
    "decode_message",
    "encode_message",
    "is_video_key",
]
