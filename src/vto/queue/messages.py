"""Queue message codecs.

Two inbound body shapes are accepted:

- The canonical task message sent by the producer API:
  {"task_id": ..., "input_container": ..., "input_key": ...,
   "output_container": ..., "transcode_types": [...]}
- A storage-creation event envelope ({"Records": [...]}) emitted when an
  object lands in the input container. It is translated into a canonical
  message with a synthesized task id and the default type set. Keys that
  do not look like video files are rejected.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from vto.core.errors import ValidationError
from vto.domain import QueueMessage

logger = logging.getLogger(__name__)

STORAGE_EVENT_SOURCE = "aws:s3"

VIDEO_EXTENSIONS = (
    ".mp4",
    ".mov",
    ".avi",
    ".mkv",
    ".wmv",
    ".flv",
    ".webm",
    ".m4v",
    ".mpeg",
    ".mpg",
)

DEFAULT_EVENT_TRANSCODE_TYPES = ("mp4_standard", "mp4_smooth", "thumbnail")


class TaskMessageModel(BaseModel):
    """Canonical queue message body."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    task_id: str = Field(min_length=1)
    input_container: str = Field(min_length=1)
    input_key: str = Field(min_length=1)
    output_container: str = ""
    transcode_types: list[str] = Field(min_length=1)

    @field_validator("transcode_types")
    @classmethod
    def validate_types(cls, v: list[str]) -> list[str]:
        """Reject blank transcode type names."""
        if any(not t.strip() for t in v):
            raise ValueError("transcode_types must not contain blank names")
        return v


class _BucketModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class _ObjectModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str


class _StorageEntityModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    bucket: _BucketModel
    object_: _ObjectModel = Field(alias="object")


class StorageEventRecordModel(BaseModel):
    """One record of a storage-creation event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_source: str = Field(alias="eventSource")
    event_name: str = Field(default="", alias="eventName")
    s3: _StorageEntityModel


class StorageEventModel(BaseModel):
    """Storage-creation event envelope."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    records: list[StorageEventRecordModel] = Field(alias="Records", min_length=1)


def is_video_key(key: str) -> bool:
    """True if the object key has a recognized video file extension."""
    return key.casefold().endswith(VIDEO_EXTENSIONS)


def synthesize_task_id() -> str:
    """Task id for event-sourced work: "s3-" plus a nanosecond timestamp."""
    return f"s3-{time.time_ns()}"


def encode_message(message: QueueMessage) -> str:
    """Serialize a QueueMessage to its canonical JSON body."""
    model = TaskMessageModel(
        task_id=message.task_id,
        input_container=message.input_container,
        input_key=message.input_key,
        output_container=message.output_container,
        transcode_types=list(message.transcode_types),
    )
    return model.model_dump_json()


def decode_message(
    body: str,
    default_types: tuple[str, ...] = DEFAULT_EVENT_TRANSCODE_TYPES,
    id_factory: Callable[[], str] = synthesize_task_id,
) -> QueueMessage:
    """Decode a message body, trying the canonical shape first.

    Args:
        body: Raw message body.
        default_types: Types assigned to storage-event messages.
        id_factory: Generates task ids for storage-event messages.

    Returns:
        The decoded QueueMessage.

    Raises:
        ValidationError: If the body matches neither shape, or is a storage
            event for a non-video key or from an unexpected source.
    """
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Message body is not JSON: {e}") from e

    try:
        canonical = TaskMessageModel.model_validate(data)
    except PydanticValidationError as canonical_error:
        try:
            event = StorageEventModel.model_validate(data)
        except PydanticValidationError:
            raise ValidationError(
                f"Unrecognized message body: {canonical_error.error_count()} "
                "validation error(s) as a task message and not a storage event"
            ) from canonical_error
        return translate_storage_event(event, default_types, id_factory)

    return QueueMessage(
        task_id=canonical.task_id,
        input_container=canonical.input_container,
        input_key=canonical.input_key,
        transcode_types=tuple(canonical.transcode_types),
        output_container=canonical.output_container,
    )


def translate_storage_event(
    event: StorageEventModel,
    default_types: tuple[str, ...] = DEFAULT_EVENT_TRANSCODE_TYPES,
    id_factory: Callable[[], str] = synthesize_task_id,
) -> QueueMessage:
    """Translate the first record of a storage event into a QueueMessage.

    The output container is left empty so the worker applies its default.

    Raises:
        ValidationError: If the record is not a storage event or the key is
            not a video file.
    """
    record = event.records[0]
    if record.event_source != STORAGE_EVENT_SOURCE:
        raise ValidationError(f"Not a storage event: {record.event_source!r}")

    key = unquote_plus(record.s3.object_.key)
    if not is_video_key(key):
        raise ValidationError(f"Not a video file, skipping: {key}")

    bucket = record.s3.bucket.name
    logger.info(
        "Received storage event: container=%s, key=%s, event=%s",
        bucket,
        key,
        record.event_name,
    )
    return QueueMessage(
        task_id=id_factory(),
        input_container=bucket,
        input_key=key,
        transcode_types=tuple(default_types),
        output_container="",
    )
