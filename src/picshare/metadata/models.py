"""Data model types for PicShare metadata.

These dataclasses represent the rows held by the metadata store (accounts,
credentials, media records) and the page envelope returned by queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Account:
    """A registered user.

    Attributes:
        id: Store-assigned identifier (0 until inserted).
        firstname: Given name.
        lastname: Family name.
        email: Login email, unique across all accounts.
    """

    firstname: str
    lastname: str
    email: str
    id: int = 0


@dataclass
class Credential:
    """Password digest for one account (one-to-one by owner id).

    Attributes:
        owner_id: The Account identifier.
        hashed_pass: bcrypt digest, never the plaintext.
    """

    owner_id: int
    hashed_pass: str


@dataclass
class MediaRecord:
    """Metadata for one stored image.

    Attributes:
        owner_id: Identifier of the owning Account (immutable).
        title: Display title.
        size: Content size in bytes.
        encoding: MIME type detected from the content.
        shareable: Whether non-owners may read the image.
        reference: Externally resolvable locator for the blob. Empty only
            between insert and the follow-up update.
        id: Store-assigned identifier (0 until inserted, immutable after).
    """

    owner_id: int
    title: str
    size: int
    encoding: str
    shareable: bool = False
    reference: str = ""
    id: int = 0

    @property
    def extension(self) -> str:
        """File extension derived from the encoding (``image/png`` -> ``png``)."""
        return self.encoding.split("/", 1)[-1]

    @property
    def storage_path(self) -> str:
        """Blob store path: ``{owner_id}/{id}.{extension}``."""
        return f"{self.owner_id}/{self.id}.{self.extension}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uid": self.owner_id,
            "title": self.title,
            "ref": self.reference,
            "size": self.size,
            "encoding": self.encoding,
            "shareable": self.shareable,
        }


@dataclass
class Page:
    """One page of a metadata query.

    Attributes:
        page: Zero-based page index that was requested.
        page_size: Fixed server page size.
        total_results: Matching row count, independent of pagination.
        records: The records on this page.
    """

    page: int
    page_size: int
    total_results: int
    records: list[MediaRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "totalResults": self.total_results,
            "imageMeta": [r.to_dict() for r in self.records],
        }
