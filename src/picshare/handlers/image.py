"""Image request handlers for PicShare.

Implements:
    - Upload (POST /image): multipart form with image, title, shareable
    - GetImage (GET /image/{uid}/{ref}): raw bytes with the stored encoding
    - UpdateImage (PUT /image/{uid}/{ref}): JSON with optional title, shareable
    - DeleteImage (DELETE /image/{uid}/{ref})
    - QueryMeta (GET /image/meta?id&uid&title&encoding&shareable&page)

Every route requires an authenticated caller; the auth middleware stores
the caller's id on ``request.state.owner_id``.
"""

import json
import logging

import pydantic
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from picshare.errors import InternalError, ValidationError
from picshare.ingestion import IngestionCoordinator, UploadRequest
from picshare.query import QueryEngine, parse_id

logger = logging.getLogger(__name__)


class MediaUpdate(BaseModel):
    """Body of PUT /image/{uid}/{ref}. Absent fields are left unchanged."""

    title: str | None = None
    shareable: bool | None = None


def parse_owner_segment(raw: str) -> int:
    """Parse the ``{uid}`` path segment.

    Raises:
        ValidationError: If it is not a non-negative integer in id range.
    """
    try:
        return parse_id(raw)
    except ValueError as exc:
        raise ValidationError("Unable to parse url parameters") from exc


def parse_ref_segment(raw: str) -> int:
    """Parse the ``{ref}`` path segment (``<id>.<ext>``) into the record id.

    Raises:
        ValidationError: If the part before the extension is not an id.
    """
    try:
        return parse_id(raw.split(".", 1)[0])
    except ValueError as exc:
        raise ValidationError("Unable to parse image reference") from exc


class ImageHandler:
    """Handles image upload, retrieval, update, deletion and queries.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    @property
    def metadata(self):
        """Shortcut to the metadata store on app.state."""
        return self.app.state.metadata

    @property
    def storage(self):
        """Shortcut to the blob store on app.state."""
        return self.app.state.storage

    @property
    def config(self):
        """Shortcut to the PicShareConfig on app.state."""
        return self.app.state.config

    def _coordinator(self) -> IngestionCoordinator:
        return IngestionCoordinator(self.metadata, self.storage, self.config.storage)

    def _queries(self) -> QueryEngine:
        return QueryEngine(self.metadata)

    async def upload(self, request: Request) -> Response:
        """Store an uploaded image.

        Implements: POST /image

        The encoding is detected from the bytes; the client's declared
        Content-Type and filename extension are ignored.

        Returns:
            200 with the MediaRecord JSON.
        """
        form = await request.form()
        image = form.get("image")
        if not isinstance(image, UploadFile):
            raise ValidationError("Upload a jpeg or png image in the 'image' form field")

        shareable = str(form.get("shareable") or "").strip().lower() == "true"
        record = await self._coordinator().upload(
            UploadRequest(
                owner_id=request.state.owner_id,
                stream=image.file,
                title=str(form.get("title") or ""),
                filename=image.filename or "",
                shareable=shareable,
            )
        )
        return JSONResponse(content=record.to_dict())

    async def get_image(self, request: Request, uid: str, ref: str) -> Response:
        """Return an image's bytes if the caller may read it.

        Implements: GET /image/{uid}/{ref}

        The blob is read from the record's own storage path.

        Returns:
            200 with the raw bytes and ``Content-Type`` set to the encoding.
        """
        record = await self._queries().get_record(
            request.state.owner_id, parse_owner_segment(uid), parse_ref_segment(ref)
        )

        path = record.storage_path
        try:
            present = await self.storage.exists(path)
        except Exception as exc:
            logger.error("Blob lookup failed for %s", path, exc_info=True)
            raise InternalError("Failed to retrieve file, try again later") from exc
        if not present:
            logger.error("Image %d has metadata but no blob at %s", record.id, path)
            raise InternalError("Failed to retrieve file, try again later")

        return StreamingResponse(
            content=self.storage.get_stream(path),
            status_code=200,
            media_type=record.encoding,
        )

    async def update_image(self, request: Request, uid: str, ref: str) -> Response:
        """Change an image's title and/or shareable flag.

        Implements: PUT /image/{uid}/{ref}

        Returns:
            200 with the updated MediaRecord JSON.
        """
        path_owner = parse_owner_segment(uid)
        media_id = parse_ref_segment(ref)

        try:
            changes = MediaUpdate.model_validate(json.loads(await request.body()))
        except (json.JSONDecodeError, UnicodeDecodeError, pydantic.ValidationError) as exc:
            logger.warning("Rejected update body for image %d: %s", media_id, exc)
            raise ValidationError("Unable to parse json, check your request") from exc

        record = await self._coordinator().update(
            caller_id=request.state.owner_id,
            path_owner_id=path_owner,
            media_id=media_id,
            title=changes.title,
            shareable=changes.shareable,
        )
        return JSONResponse(content=record.to_dict())

    async def delete_image(self, request: Request, uid: str, ref: str) -> Response:
        """Delete an image owned by the caller.

        Implements: DELETE /image/{uid}/{ref}

        Returns:
            200 with an empty body once the metadata row is gone, even if
            the blob could not be removed.
        """
        await self._coordinator().delete(
            caller_id=request.state.owner_id,
            path_owner_id=parse_owner_segment(uid),
            media_id=parse_ref_segment(ref),
        )
        return Response(status_code=200)

    async def query_meta(self, request: Request) -> Response:
        """List image metadata visible to the caller.

        Implements: GET /image/meta

        Returns:
            200 with the page envelope JSON.
        """
        page = await self._queries().query(request.state.owner_id, request.query_params)
        return JSONResponse(content=page.to_dict())
