"""Media ingestion: upload, metadata update and deletion.

An upload touches two stores that share no transaction: a metadata row and
a blob file. It runs as a fixed sequence of steps, each optionally paired
with an undo action:

    ======================  ==========================================
    step                    undo (run when a later step fails)
    ======================  ==========================================
    sniff_type              (none; nothing written yet)
    allocate_identity       delete the inserted metadata row
    compute_reference       (none; pure)
    persist_reference       (none; covered by allocate_identity's undo)
    write_blob              (none; see below)
    ======================  ==========================================

The row must be inserted before the blob path can be computed because the
path embeds the store-assigned record id. When a step fails, the undo of
every completed step runs in reverse order. Undo failures are logged and
counted but never replace the error that triggered them.

A blob copy that fails partway may leave a partial temp file behind; the
local backend removes such files on its next startup.

Deletion removes the metadata row first and then the blob. A failed blob
delete leaves an orphan that is logged and counted, and the deletion is
still reported as successful.
"""

import dataclasses
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import BinaryIO

from picshare import metrics
from picshare.config import StorageConfig
from picshare.errors import InternalError, NotFoundError, PicShareError, UnsupportedMediaType
from picshare.metadata.models import MediaRecord
from picshare.metadata.store import MetadataStore
from picshare.policy import check_path_owner, require_write
from picshare.query import load_record
from picshare.sniff import ACCEPTED_IMAGE_TYPES, extension_for, sniff_stream
from picshare.storage.backend import BlobStore

logger = logging.getLogger(__name__)

UNTITLED = "untitled"


def normalize_title(title: str, extension: str) -> str:
    """Replace everything after the first ``.`` with the real extension.

    ``normalize_title("a.bin", "png") == "a.png"``; an empty stem becomes
    ``untitled``.
    """
    stem = title.split(".", 1)[0].strip() or UNTITLED
    return f"{stem}.{extension}"


@dataclass
class UploadRequest:
    """Inputs of a single upload.

    Attributes:
        owner_id: Authenticated uploader.
        stream: Seekable binary stream holding the image bytes.
        title: Requested display title (may be empty).
        filename: Client filename, used when ``title`` is empty.
        shareable: Whether the image is readable by everyone.
    """

    owner_id: int
    stream: BinaryIO
    title: str = ""
    filename: str = ""
    shareable: bool = False


@dataclass
class UploadContext:
    """State threaded through the upload steps."""

    request: UploadRequest
    encoding: str = ""
    size: int = 0
    record: MediaRecord | None = None


StepFn = Callable[[UploadContext], Awaitable[None]]


@dataclass(frozen=True)
class Step:
    """One upload step and its compensating action.

    Attributes:
        name: Step name (used in logs and metrics).
        action: Coroutine performing the step.
        undo: Coroutine reverting the step, or None.
        failure_message: Client-safe message when the step fails.
    """

    name: str
    action: StepFn
    undo: StepFn | None = None
    failure_message: str = "Failed to upload image, try again later"


class IngestionCoordinator:
    """Orchestrates writes across the metadata store and the blob store.

    Attributes:
        metadata: The metadata store.
        storage: The blob store.
        config: Storage configuration (public base URL, media directory).
        steps: The ordered upload steps with their undo actions.
    """

    def __init__(
        self, metadata: MetadataStore, storage: BlobStore, config: StorageConfig
    ) -> None:
        self.metadata = metadata
        self.storage = storage
        self.config = config
        self.steps: tuple[Step, ...] = (
            Step("sniff_type", self._sniff_type),
            Step(
                "allocate_identity",
                self._allocate_identity,
                undo=self._delete_row,
                failure_message="Failed to add image meta, try again later",
            ),
            Step("compute_reference", self._compute_reference),
            Step(
                "persist_reference",
                self._persist_reference,
                failure_message="Failed to update file reference, try again later",
            ),
            Step(
                "write_blob",
                self._write_blob,
                failure_message="Failed to save file, try again later",
            ),
        )

    def reference_for(self, record: MediaRecord) -> str:
        """``{public_base_url}/{media_dir}/{owner_id}/{id}.{ext}``."""
        base = self.config.public_base_url.rstrip("/")
        return f"{base}/{self.config.media_dir}/{record.storage_path}"

    # -- Upload ----------------------------------------------------------------

    async def upload(self, request: UploadRequest) -> MediaRecord:
        """Store a new image and return its complete record.

        Raises:
            UnsupportedMediaType: If the content is not a jpeg or png image.
            InternalError: If a metadata or blob write fails (after
                compensation).
        """
        ctx = UploadContext(request=request)
        try:
            await self._run(ctx)
        except PicShareError:
            metrics.record_operation("upload", "error")
            raise

        assert ctx.record is not None
        metrics.record_operation("upload", "success")
        metrics.record_bytes_ingested(ctx.size)
        logger.info(
            "Uploaded image %d (title=%s size=%d type=%s)",
            ctx.record.id, ctx.record.title, ctx.record.size, ctx.record.encoding,
        )
        return ctx.record

    async def _run(self, ctx: UploadContext) -> None:
        completed: list[Step] = []
        for step in self.steps:
            try:
                await step.action(ctx)
            except PicShareError:
                await self._compensate(completed, ctx)
                raise
            except Exception as exc:
                logger.error("Upload step %s failed", step.name, exc_info=True)
                await self._compensate(completed, ctx)
                raise InternalError(step.failure_message) from exc
            completed.append(step)

    async def _compensate(self, completed: list[Step], ctx: UploadContext) -> None:
        for step in reversed(completed):
            if step.undo is None:
                continue
            try:
                await step.undo(ctx)
            except Exception:
                logger.error("Compensation for step %s failed", step.name, exc_info=True)
                metrics.record_compensation(step.name, "failed")
            else:
                logger.info("Compensated step %s", step.name)
                metrics.record_compensation(step.name, "success")

    async def _sniff_type(self, ctx: UploadContext) -> None:
        stream = ctx.request.stream
        encoding = sniff_stream(stream)
        if encoding not in ACCEPTED_IMAGE_TYPES:
            logger.warning("Rejected upload of type %s", encoding)
            raise UnsupportedMediaType()
        stream.seek(0, os.SEEK_END)
        ctx.size = stream.tell()
        stream.seek(0)
        ctx.encoding = encoding

    async def _allocate_identity(self, ctx: UploadContext) -> None:
        req = ctx.request
        title = normalize_title(req.title or req.filename, extension_for(ctx.encoding))
        record = MediaRecord(
            owner_id=req.owner_id,
            title=title,
            size=ctx.size,
            encoding=ctx.encoding,
            shareable=req.shareable,
        )
        record.id = await self.metadata.insert_media(record)
        ctx.record = record

    async def _compute_reference(self, ctx: UploadContext) -> None:
        assert ctx.record is not None
        ctx.record.reference = self.reference_for(ctx.record)

    async def _persist_reference(self, ctx: UploadContext) -> None:
        assert ctx.record is not None
        await self.metadata.update_media(ctx.record)

    async def _write_blob(self, ctx: UploadContext) -> None:
        assert ctx.record is not None
        await self.storage.put(ctx.record.storage_path, ctx.request.stream)

    async def _delete_row(self, ctx: UploadContext) -> None:
        assert ctx.record is not None
        await self.metadata.delete_media(ctx.record.id)

    # -- Update ----------------------------------------------------------------

    async def update(
        self,
        caller_id: int,
        path_owner_id: int,
        media_id: int,
        title: str | None = None,
        shareable: bool | None = None,
    ) -> MediaRecord:
        """Apply a partial metadata change.

        ``None`` leaves a field untouched and so does an empty or blank title. Two
        concurrent updates to one record are last-writer-wins.

        Raises:
            NotFoundError: If the record does not exist.
            OwnerMismatch: If ``path_owner_id`` is not the record's owner.
            AuthError: If the caller is not the owner.
            InternalError: If the metadata store fails.
        """
        record = await load_record(self.metadata, media_id)
        check_path_owner(path_owner_id, record)
        require_write(caller_id, record)

        changes: dict = {}
        if title and title.strip():
            changes["title"] = normalize_title(title, record.extension)
        if shareable is not None:
            changes["shareable"] = shareable
        record = dataclasses.replace(record, **changes)

        try:
            await self.metadata.update_media(record)
        except LookupError as exc:
            raise NotFoundError() from exc
        except Exception as exc:
            logger.error("Failed to update image %d", media_id, exc_info=True)
            metrics.record_operation("update", "error")
            raise InternalError("Failed to update image, try again later") from exc

        metrics.record_operation("update", "success")
        logger.info("Updated image %d fields=%s", media_id, sorted(changes))
        return record

    # -- Delete ----------------------------------------------------------------

    async def delete(self, caller_id: int, path_owner_id: int, media_id: int) -> MediaRecord:
        """Delete the metadata row, then the blob (best effort).

        Raises:
            NotFoundError: If the record does not exist.
            OwnerMismatch: If ``path_owner_id`` is not the record's owner.
            AuthError: If the caller is not the owner.
            InternalError: If the metadata delete fails.
        """
        record = await load_record(self.metadata, media_id)
        check_path_owner(path_owner_id, record)
        require_write(caller_id, record)

        try:
            await self.metadata.delete_media(record.id)
        except Exception as exc:
            logger.error("Failed to delete image %d from metadata", media_id, exc_info=True)
            metrics.record_operation("delete", "error")
            raise InternalError("Unable to delete image, try again later") from exc

        try:
            await self.storage.delete(record.storage_path)
        except Exception:
            logger.error(
                "Failed to delete blob %s; orphaned file needs an integrity sweep",
                record.storage_path,
                exc_info=True,
            )
            metrics.record_orphan_blob()
        else:
            logger.info("Deleted image %d", media_id)

        metrics.record_operation("delete", "success")
        return record
