"""Abstract blob storage backend protocol for PicShare."""

from typing import AsyncIterator, BinaryIO, Protocol


class BlobStore(Protocol):
    """Protocol defining the blob storage interface.

    Blobs are addressed by a relative path ``{owner_id}/{record_id}.{ext}``.
    Methods raise ``OSError`` (or a subclass) on failure.
    """

    async def init(self) -> None:
        """Initialize the backend (create directories, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...

    async def put(self, path: str, stream: BinaryIO) -> int:
        """Create the blob at ``path`` and copy the whole stream into it.

        Args:
            path: Relative blob path.
            stream: Readable binary stream positioned at its start.

        Returns:
            Number of bytes written.
        """
        ...

    async def get(self, path: str) -> bytes:
        """Return the full contents of a blob.

        Raises:
            FileNotFoundError: If no blob exists at ``path``.
        """
        ...

    def get_stream(self, path: str) -> AsyncIterator[bytes]:
        """Yield the blob contents in chunks."""
        ...

    async def delete(self, path: str) -> None:
        """Delete a blob.

        Raises:
            FileNotFoundError: If no blob exists at ``path``.
        """
        ...

    async def exists(self, path: str) -> bool:
        """Return True if a blob exists at ``path``."""
        ...
