"""Blob storage backends for PicShare."""

from typing import TYPE_CHECKING

from picshare.storage.backend import BlobStore

if TYPE_CHECKING:
    from picshare.config import StorageConfig

__all__ = ["BlobStore", "create_blob_store"]


def create_blob_store(config: "StorageConfig") -> BlobStore:
    """Create a blob store instance based on configuration.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.backend
    if backend == "local":
        from picshare.storage.local import LocalStorageBackend

        return LocalStorageBackend(config.local_root)
    elif backend == "memory":
        from picshare.storage.memory import MemoryStorageBackend

        return MemoryStorageBackend()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")
