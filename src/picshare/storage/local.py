"""Local filesystem blob store for PicShare.

Blobs are stored under ``{root}/{owner_id}/{record_id}.{ext}``.

Crash-only design:
    - Writes stream into a temp file which is fsync'd and then renamed over
      the final path, so a reader never sees a half-written image.
    - Startup removes orphan temp files left by interrupted writes.
"""

import logging
import os
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024


class LocalStorageBackend:
    """Blob store that persists images on the local filesystem.

    Attributes:
        root: The root directory for all stored blobs.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local storage backend.

        Args:
            root: Root directory path for blob storage.
        """
        self.root = Path(root)

    def _blob_path(self, path: str) -> Path:
        """Resolve a relative blob path inside the root.

        Raises:
            ValueError: If the path escapes the root directory.
        """
        full = (self.root / path).resolve()
        if not full.is_relative_to(self.root.resolve()):
            raise ValueError(f"Blob path escapes storage root: {path}")
        return full

    async def init(self) -> None:
        """Create the root directory and clean up orphan temp files."""
        self.root.mkdir(parents=True, exist_ok=True)
        self._clean_temp_files()
        logger.info("Local storage backend initialized at %s", self.root)

    def _clean_temp_files(self) -> None:
        """Remove orphan temp files left by interrupted writes."""
        count = 0
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for fname in filenames:
                if ".tmp." in fname:
                    try:
                        os.unlink(os.path.join(dirpath, fname))
                        count += 1
                    except OSError:
                        logger.warning("Could not remove temp file %s", fname)
        if count > 0:
            logger.info("Cleaned %d orphan temp files on startup", count)

    async def close(self) -> None:
        """No-op for local filesystem backend."""
        pass

    async def put(self, path: str, stream: BinaryIO) -> int:
        """Copy ``stream`` into the blob at ``path``.

        Uses the temp-fsync-rename pattern; the temp file is removed if the
        copy fails partway.

        Args:
            path: Relative blob path.
            stream: Readable binary stream positioned at its start.

        Returns:
            Number of bytes written.
        """
        dest = self._blob_path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)

        tmp = dest.with_name(f"{dest.name}.tmp.{uuid.uuid4().hex[:8]}")
        written = 0
        try:
            with open(tmp, "wb") as fh:
                for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
                    fh.write(chunk)
                    written += len(chunk)
                fh.flush()
                os.fsync(fh.fileno())
            tmp.rename(dest)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

        return written

    async def get(self, path: str) -> bytes:
        return self._blob_path(path).read_bytes()

    async def get_stream(self, path: str) -> AsyncIterator[bytes]:
        """Yield 64 KB chunks of the blob at ``path``."""
        with open(self._blob_path(path), "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                yield chunk

    async def delete(self, path: str) -> None:
        """Delete the blob at ``path`` and prune an empty owner directory.

        Raises:
            FileNotFoundError: If the blob does not exist.
        """
        blob = self._blob_path(path)
        blob.unlink()

        parent = blob.parent
        if parent != self.root.resolve():
            try:
                parent.rmdir()  # Only removes empty dirs
            except OSError:
                pass

    async def exists(self, path: str) -> bool:
        return self._blob_path(path).is_file()
