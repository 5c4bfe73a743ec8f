"""Access decisions for media records.

Pure functions of the caller's identity and a record's owner/visibility.
``shareable`` grants read access to everyone; only the owner may write or
delete.
"""

import logging

from picshare.errors import AuthError, OwnerMismatch
from picshare.metadata.models import MediaRecord

logger = logging.getLogger(__name__)


def can_read(caller_id: int, record: MediaRecord) -> bool:
    return caller_id == record.owner_id or record.shareable


def can_write(caller_id: int, record: MediaRecord) -> bool:
    return caller_id == record.owner_id


def check_path_owner(path_owner_id: int, record: MediaRecord) -> None:
    """Reject a path whose owner segment names someone other than the owner.

    Raises:
        OwnerMismatch: If ``path_owner_id`` differs from ``record.owner_id``.
    """
    if path_owner_id != record.owner_id:
        logger.warning(
            "Owner mismatch for image %d: path says %d, owner is %d",
            record.id, path_owner_id, record.owner_id,
        )
        raise OwnerMismatch()


def require_read(caller_id: int, record: MediaRecord) -> None:
    """Raise AuthError unless ``caller_id`` may read ``record``."""
    if not can_read(caller_id, record):
        logger.warning("User %d denied read of private image %d", caller_id, record.id)
        raise AuthError("This image is private and you do not have access")


def require_write(caller_id: int, record: MediaRecord) -> None:
    """Raise AuthError unless ``caller_id`` may modify or delete ``record``."""
    if not can_write(caller_id, record):
        logger.warning("User %d denied write to image %d", caller_id, record.id)
        raise AuthError("You do not have permission to modify this image")
