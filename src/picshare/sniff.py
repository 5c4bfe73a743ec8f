"""Content-based MIME type detection.

Uploads are classified by libmagic (through python-magic) from their first
bytes. The declared Content-Type and filename of an upload are never
consulted.
"""

import logging
from typing import BinaryIO

import magic

logger = logging.getLogger(__name__)

SNIFF_LEN = 512

OCTET_STREAM = "application/octet-stream"

ACCEPTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png"})


def detect_content_type(data: bytes) -> str:
    """Classify ``data`` (at most the first 512 bytes are examined).

    Returns:
        A bare MIME type such as ``image/png``. ``application/octet-stream``
        when libmagic cannot classify the bytes.
    """
    head = data[:SNIFF_LEN]
    if not head:
        return OCTET_STREAM
    try:
        detected = magic.from_buffer(head, mime=True)
    except magic.MagicException as exc:
        logger.warning("libmagic failed to classify upload: %s", exc)
        return OCTET_STREAM
    return detected.split(";", 1)[0].strip().lower() or OCTET_STREAM


def sniff_stream(stream: BinaryIO) -> str:
    """Classify a seekable stream from its first bytes, then rewind it."""
    head = stream.read(SNIFF_LEN)
    stream.seek(0)
    return detect_content_type(head)


def extension_for(mime: str) -> str:
    """File extension for an accepted image type (``image/jpeg`` -> ``jpeg``)."""
    return mime.split(";", 1)[0].split("/", 1)[-1]
