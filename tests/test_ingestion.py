"""Tests for the upload step machine, updates and deletes.

Failure injection uses small subclasses of the in-memory stores that raise
at a chosen call.
"""

import base64
import io

import pytest

from picshare.config import StorageConfig
from picshare.errors import (
    AuthError,
    InternalError,
    NotFoundError,
    OwnerMismatch,
    UnsupportedMediaType,
)
from picshare.ingestion import IngestionCoordinator, UploadRequest, normalize_title
from picshare.metadata.memory import MemoryMetadataStore
from picshare.metadata.models import Account
from picshare.metadata.predicates import all_of
from picshare.storage.memory import MemoryStorageBackend

# 1x1 RGBA PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
STORAGE_CONFIG = StorageConfig(backend="memory", public_base_url="http://img.test/")


class FailingInsertStore(MemoryMetadataStore):
    async def insert_media(self, record):
        raise RuntimeError("disk I/O error")


class FailingUpdateStore(MemoryMetadataStore):
    async def update_media(self, record):
        raise RuntimeError("database is locked")


class FailingUpdateAndDeleteStore(FailingUpdateStore):
    async def delete_media(self, media_id):
        raise RuntimeError("database is locked")


class FailingDeleteStore(MemoryMetadataStore):
    async def delete_media(self, media_id):
        raise RuntimeError("database is locked")


class FailingPutStorage(MemoryStorageBackend):
    async def put(self, path, stream):
        raise OSError("No space left on device")


class FailingDeleteStorage(MemoryStorageBackend):
    async def delete(self, path):
        raise PermissionError(path)


async def make_metadata(cls=MemoryMetadataStore):
    metadata = cls()
    await metadata.insert_account(Account("Alice", "A", "alice@example.com"))
    await metadata.insert_account(Account("Bob", "B", "bob@example.com"))
    return metadata


async def row_count(metadata) -> int:
    return await metadata.count_media(all_of())


def request(data=PNG_BYTES, **kwargs) -> UploadRequest:
    kwargs.setdefault("owner_id", 1)
    return UploadRequest(stream=io.BytesIO(data), **kwargs)


class TestNormalizeTitle:
    @pytest.mark.parametrize(
        "title, ext, expected",
        [
            ("a.bin", "png", "a.png"),
            ("holiday", "jpeg", "holiday.jpeg"),
            ("my.photo.gif", "png", "my.png"),
            ("", "png", "untitled.png"),
            (".hidden", "png", "untitled.png"),
        ],
    )
    def test_normalize(self, title, ext, expected):
        assert normalize_title(title, ext) == expected


class TestUpload:
    async def test_success(self):
        metadata = await make_metadata()
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)

        record = await coordinator.upload(request(title="a.bin", shareable=True))

        assert record.id == 1
        assert record.title == "a.png"
        assert record.size == len(PNG_BYTES)
        assert record.reference == "http://img.test/image/1/1.png"
        assert storage.blobs["1/1.png"] == PNG_BYTES
        stored = await metadata.get_media(1)
        assert stored.reference == record.reference
        assert stored.shareable is True

    async def test_unsupported_type_writes_nothing(self):
        metadata = await make_metadata()
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)

        with pytest.raises(UnsupportedMediaType):
            await coordinator.upload(request(data=b"plain text"))
        assert await row_count(metadata) == 0
        assert storage.blobs == {}

    async def test_insert_failure(self):
        metadata = await make_metadata(FailingInsertStore)
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)

        with pytest.raises(InternalError):
            await coordinator.upload(request())
        assert storage.blobs == {}

    async def test_reference_update_failure_removes_row(self):
        metadata = await make_metadata(FailingUpdateStore)
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)

        with pytest.raises(InternalError):
            await coordinator.upload(request())
        assert await row_count(metadata) == 0
        assert storage.blobs == {}

    async def test_blob_failure_removes_row(self):
        metadata = await make_metadata()
        storage = FailingPutStorage()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)

        with pytest.raises(InternalError) as excinfo:
            await coordinator.upload(request())
        assert "save file" in excinfo.value.message
        assert await row_count(metadata) == 0

    async def test_compensation_failure_keeps_step_error(self):
        metadata = await make_metadata(FailingUpdateAndDeleteStore)
        coordinator = IngestionCoordinator(metadata, MemoryStorageBackend(), STORAGE_CONFIG)

        with pytest.raises(InternalError) as excinfo:
            await coordinator.upload(request())
        assert "file reference" in excinfo.value.message

    async def test_failed_upload_leaves_existing_rows(self):
        metadata = await make_metadata()
        coordinator = IngestionCoordinator(metadata, MemoryStorageBackend(), STORAGE_CONFIG)
        await coordinator.upload(request(owner_id=2))

        failing = IngestionCoordinator(metadata, FailingPutStorage(), STORAGE_CONFIG)
        with pytest.raises(InternalError):
            await failing.upload(request())
        assert await row_count(metadata) == 1


class TestUpdate:
    async def _uploaded(self, metadata_cls=MemoryMetadataStore):
        metadata = await make_metadata(metadata_cls)
        coordinator = IngestionCoordinator(metadata, MemoryStorageBackend(), STORAGE_CONFIG)
        await coordinator.upload(request(title="a"))
        return coordinator

    async def test_title_gets_real_extension(self):
        coordinator = await self._uploaded()
        record = await coordinator.update(1, 1, 1, title="b.jpeg")
        assert record.title == "b.png"
        assert record.shareable is False

    async def test_empty_title_is_no_change(self):
        coordinator = await self._uploaded()
        record = await coordinator.update(1, 1, 1, title="", shareable=True)
        assert record.title == "a.png"
        assert record.shareable is True

    async def test_blank_title_is_no_change(self):
        coordinator = await self._uploaded()
        record = await coordinator.update(1, 1, 1, title="   ")
        assert record.title == "a.png"
        stored = await coordinator.metadata.get_media(1)
        assert stored.title == "a.png"

    async def test_non_owner(self):
        coordinator = await self._uploaded()
        with pytest.raises(AuthError):
            await coordinator.update(2, 1, 1, title="x")

    async def test_path_mismatch(self):
        coordinator = await self._uploaded()
        with pytest.raises(OwnerMismatch):
            await coordinator.update(1, 2, 1, title="x")

    async def test_missing(self):
        coordinator = await self._uploaded()
        with pytest.raises(NotFoundError):
            await coordinator.update(1, 1, 9, title="x")


class TestDelete:
    async def test_delete(self):
        metadata = await make_metadata()
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)
        await coordinator.upload(request())

        await coordinator.delete(1, 1, 1)
        assert await metadata.get_media(1) is None
        assert storage.blobs == {}

    async def test_blob_failure_still_succeeds(self):
        metadata = await make_metadata()
        storage = FailingDeleteStorage()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)
        await coordinator.upload(request())

        record = await coordinator.delete(1, 1, 1)
        assert record.id == 1
        assert await metadata.get_media(1) is None
        assert "1/1.png" in storage.blobs

    async def test_metadata_failure_keeps_blob(self):
        metadata = await make_metadata(FailingDeleteStore)
        storage = MemoryStorageBackend()
        coordinator = IngestionCoordinator(metadata, storage, STORAGE_CONFIG)
        await coordinator.upload(request())

        with pytest.raises(InternalError):
            await coordinator.delete(1, 1, 1)
        assert "1/1.png" in storage.blobs

    async def test_non_owner(self):
        metadata = await make_metadata()
        coordinator = IngestionCoordinator(metadata, MemoryStorageBackend(), STORAGE_CONFIG)
        await coordinator.upload(request(shareable=True))
        with pytest.raises(AuthError):
            await coordinator.delete(2, 1, 1)
