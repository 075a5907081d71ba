"""Blob storage for task inputs and outputs.

The core only needs streamed get-object and put-object by (container, key).
LocalBlobStore maps containers to directories under a root path and keys
to relative file paths.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

from vto.core.errors import BlobStoreError

logger = logging.getLogger(__name__)

# Streaming chunk size for copies (bytes)
COPY_BUFFER_SIZE = 1024 * 1024


class BlobStore(Protocol):
    """Streamed object transfer by container and key."""

    def download(self, container: str, key: str, destination: Path) -> Path:
        """Stream an object to a local file. Returns the destination."""
        ...

    def upload(self, source: Path, container: str, key: str) -> None:
        """Stream a local file into an object."""
        ...


class LocalBlobStore:
    """BlobStore backed by the local filesystem.

    Writes go to a temporary sibling file and are renamed into place, so a
    reader never observes a partially written object.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def object_path(self, container: str, key: str) -> Path:
        """Resolve the filesystem path for an object.

        Raises:
            BlobStoreError: If the container or key escapes the root.
        """
        if not container or "/" in container or container in (".", ".."):
            raise BlobStoreError(container, key, "invalid container name")
        base = (self._root / container).resolve()
        path = (base / key.lstrip("/")).resolve()
        if not key or not path.is_relative_to(base) or path == base:
            raise BlobStoreError(container, key, "invalid object key")
        return path

    def download(self, container: str, key: str, destination: Path) -> Path:
        source = self.object_path(container, key)
        if not source.is_file():
            raise BlobStoreError(container, key, "object not found")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with source.open("rb") as src, destination.open("wb") as dst:
                shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
        except OSError as e:
            raise BlobStoreError(container, key, f"download failed: {e}") from e
        logger.debug("Downloaded %s/%s -> %s", container, key, destination)
        return destination

    def upload(self, source: Path, container: str, key: str) -> None:
        target = self.object_path(container, key)
        if not source.is_file():
            raise BlobStoreError(container, key, f"local file not found: {source}")
        partial = target.with_name(target.name + ".partial")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with source.open("rb") as src, partial.open("wb") as dst:
                shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
            partial.replace(target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise BlobStoreError(container, key, f"upload failed: {e}") from e
        logger.info(
            "Uploaded %s -> %s/%s (%.2f MB)",
            source.name,
            container,
            key,
            target.stat().st_size / 1024 / 1024,
        )
