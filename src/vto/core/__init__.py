"""Core utilities shared across VTO packages."""

from vto.core.errors import (
    BlobStoreError,
    EncodeFailure,
    QueueError,
    StorageError,
    TransportError,
    ValidationError,
    VTOError,
)
from vto.core.subprocess_utils import run_command

__all__ = [
    "BlobStoreError",
    "EncodeFailure",
    "QueueError",
    "StorageError",
    "TransportError",
    "VTOError",
    "ValidationError",
    "run_command",
]
