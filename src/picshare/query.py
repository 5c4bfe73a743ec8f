"""Permission-scoped, paginated media metadata queries.

Optional filter parameters are compiled into a conjunctive predicate and
joined with a mandatory visibility clause ``(owner == caller OR
shareable)``, so no combination of filters can reach another user's
private images. A request with no filters at all means "my library" and is
scoped to ``owner == caller`` alone.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from picshare.config import PAGE_SIZE
from picshare.errors import InternalError, NotFoundError, ValidationError
from picshare.metadata.models import MediaRecord, Page
from picshare.metadata.predicates import Predicate, all_of, any_of, eq
from picshare.metadata.store import MetadataStore
from picshare.policy import check_path_owner, require_read

logger = logging.getLogger(__name__)

# Largest value SQLite can bind as an INTEGER
MAX_SQL_INT = 2**63 - 1

_TRUE = {"true", "1"}
_FALSE = {"false", "0"}


def parse_id(raw: str) -> int:
    """Parse a non-negative ASCII decimal id that fits a SQLite INTEGER."""
    if not (raw.isascii() and raw.isdigit()):
        raise ValueError(f"not an id: {raw!r}")
    value = int(raw)
    if value > MAX_SQL_INT:
        raise ValueError(f"id out of range: {raw!r}")
    return value


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


# query parameter -> (column, parser)
FILTERS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "id": ("id", parse_id),
    "uid": ("owner_id", parse_id),
    "title": ("title", str),
    "encoding": ("encoding", str),
    "shareable": ("shareable", _parse_bool),
}


def parse_page(raw: str | None, page_size: int = PAGE_SIZE) -> int:
    """Parse a page index.

    Missing, malformed or negative values give 0, as does an index whose
    offset (``page * page_size``) would not fit a SQLite INTEGER.
    """
    try:
        page = int(raw) if raw is not None else 0
    except ValueError:
        return 0
    if page < 0 or page * page_size > MAX_SQL_INT:
        return 0
    return page


def build_predicate(caller_id: int, params: Mapping[str, str]) -> Predicate:
    """Compile query parameters into a scoped predicate.

    Args:
        caller_id: Authenticated caller's account id.
        params: Raw query parameters. ``page`` and unknown keys are ignored.

    Returns:
        ``owner == caller`` when no filter is present, otherwise
        ``filter AND ... AND (owner == caller OR shareable)``.

    Raises:
        ValidationError: If a filter value cannot be parsed.
    """
    clauses: list[Predicate] = []
    for name, (column, parse) in FILTERS.items():
        if name not in params:
            continue
        try:
            value = parse(params[name])
        except ValueError as exc:
            raise ValidationError(f"Invalid value for query parameter '{name}'") from exc
        clauses.append(eq(column, value))

    if not clauses:
        return eq("owner_id", caller_id)

    clauses.append(any_of(eq("owner_id", caller_id), eq("shareable", True)))
    return all_of(*clauses)


async def load_record(metadata: MetadataStore, media_id: int) -> MediaRecord:
    """Fetch one media record by id.

    Raises:
        NotFoundError: If no record has this id.
        InternalError: If the metadata store fails.
    """
    try:
        record = await metadata.get_media(media_id)
    except Exception as exc:
        logger.error("Failed to load image %d", media_id, exc_info=True)
        raise InternalError("Failed to retrieve image, try again later") from exc
    if record is None:
        raise NotFoundError("No image with that information available")
    return record


class QueryEngine:
    """Runs scoped metadata queries and wraps results in a page envelope.

    Attributes:
        metadata: The metadata store to query.
        page_size: Fixed number of records per page.
    """

    def __init__(self, metadata: MetadataStore, page_size: int = PAGE_SIZE) -> None:
        self.metadata = metadata
        self.page_size = page_size

    async def get_record(self, caller_id: int, path_owner_id: int, media_id: int) -> MediaRecord:
        """Return a single record the caller is allowed to read.

        Raises:
            NotFoundError: If the record does not exist.
            OwnerMismatch: If ``path_owner_id`` is not the record's owner.
            AuthError: If the record is private and not the caller's.
            InternalError: If the metadata store fails.
        """
        record = await load_record(self.metadata, media_id)
        check_path_owner(path_owner_id, record)
        require_read(caller_id, record)
        return record

    async def query(self, caller_id: int, params: Mapping[str, str]) -> Page:
        """Return one page of records visible to ``caller_id``.

        The total is counted against the same predicate without
        pagination, then the page is selected with
        ``LIMIT page_size OFFSET page * page_size``.

        Raises:
            ValidationError: If a filter value cannot be parsed.
            InternalError: If the metadata store fails.
        """
        page = parse_page(params.get("page"), self.page_size)
        predicate = build_predicate(caller_id, params)

        try:
            total = await self.metadata.count_media(predicate)
            records = await self.metadata.select_media(
                predicate, limit=self.page_size, offset=page * self.page_size
            )
        except Exception as exc:
            logger.error("Metadata query failed for user %d", caller_id, exc_info=True)
            raise InternalError("Failed to complete query, try again later") from exc

        return Page(
            page=page,
            page_size=self.page_size,
            total_results=total,
            records=records,
        )
