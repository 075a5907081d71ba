"""Blob storage for transcode inputs and outputs."""

from vto.storage.blob import BlobStore, LocalBlobStore

__all__ = ["BlobStore", "LocalBlobStore"]
