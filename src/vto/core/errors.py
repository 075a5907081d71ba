"""Exception hierarchy for VTO.

Errors fall into a few families so callers can pick the granularity they
need:

- TransportError and subclasses: a backing store, broker, or blob store
  call failed. Never retried by the component that raised it.
- EncodeFailure: the external encoder exited non-zero. Tagged with a kind
  of "hardware" or "other" depending on captured output.
- ValidationError: malformed input such as an undecodable queue body or
  unsafe raw encoder arguments.

Task lifecycle errors (not found, illegal state) live in
vto.tasks.exceptions and also derive from VTOError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from vto.executor.engine import ExecutionResult


class VTOError(Exception):
    """Base exception for all VTO errors."""


class TransportError(VTOError):
    """A call to an external collaborator failed."""


class StorageError(TransportError):
    """The document store rejected or failed an operation."""


class QueueError(TransportError):
    """The message broker rejected or failed an operation."""


class BlobStoreError(TransportError):
    """An object could not be read from or written to the blob store.

    Attributes:
        container: Container (bucket) name involved in the failure.
        key: Object key involved in the failure.
    """

    def __init__(self, container: str, key: str, message: str) -> None:
        self.container = container
        self.key = key
        super().__init__(f"{container}/{key}: {message}")


class ValidationError(VTOError):
    """Input failed validation before reaching the core."""


class EncodeFailure(VTOError):
    """The external encoder process failed.

    Attributes:
        kind: "hardware" when the captured output carries a hardware
            encoder failure marker, otherwise "other".
        result: The captured execution result (command, output, duration).
    """

    def __init__(
        self,
        kind: Literal["hardware", "other"],
        result: ExecutionResult,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.result = result
        default_msg = f"encoder exited with code {result.returncode}"
        if kind == "hardware":
            default_msg = f"hardware encode failed ({default_msg})"
        super().__init__(message or default_msg)

    @property
    def is_hardware(self) -> bool:
        """True if the failure was attributed to the hardware encoder."""
        return self.kind == "hardware"
