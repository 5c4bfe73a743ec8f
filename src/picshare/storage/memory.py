"""In-memory blob store for PicShare.

Holds every blob in a dict keyed by relative path. Intended for tests and
ephemeral deployments; nothing survives a restart.
"""

import logging
from collections.abc import AsyncIterator
from typing import BinaryIO

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class MemoryStorageBackend:
    """Blob store backed by a Python dict.

    Attributes:
        blobs: Mapping of relative path to stored bytes.
    """

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    async def init(self) -> None:
        logger.info("Memory storage backend initialized")

    async def close(self) -> None:
        self.blobs.clear()

    async def put(self, path: str, stream: BinaryIO) -> int:
        data = stream.read()
        self.blobs[path] = data
        return len(data)

    async def get(self, path: str) -> bytes:
        try:
            return self.blobs[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    async def get_stream(self, path: str) -> AsyncIterator[bytes]:
        data = await self.get(path)
        for start in range(0, len(data), _CHUNK_SIZE):
            yield data[start:start + _CHUNK_SIZE]

    async def delete(self, path: str) -> None:
        try:
            del self.blobs[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    async def exists(self, path: str) -> bool:
        return path in self.blobs
