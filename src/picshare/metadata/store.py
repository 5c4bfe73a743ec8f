"""Abstract metadata store protocol for PicShare."""

from typing import Protocol

from picshare.metadata.models import Account, Credential, MediaRecord
from picshare.metadata.predicates import Predicate


class MetadataStore(Protocol):
    """Protocol defining the metadata store interface.

    All metadata backends (SQLite, in-memory) implement this interface.
    Inserts return the store-assigned integer identifier; the store
    guarantees identifiers are unique under concurrent inserts. Methods
    raise on storage failure; callers decide how failures are reported.
    """

    async def init_db(self) -> None:
        """Initialize the schema. Must be idempotent."""
        ...

    async def close(self) -> None:
        """Close the connection and release resources."""
        ...

    # -- Accounts --------------------------------------------------------------

    async def insert_account(self, account: Account) -> int:
        """Insert an account row and return its assigned id.

        Args:
            account: The account to insert (its ``id`` is ignored).

        Returns:
            The store-assigned account id.
        """
        ...

    async def delete_account(self, account_id: int) -> None:
        """Delete an account row (and its credential, if any)."""
        ...

    async def find_accounts_by_email(self, email: str) -> list[Account]:
        """Return every account with exactly this email."""
        ...

    # -- Credentials -----------------------------------------------------------

    async def insert_credential(self, credential: Credential) -> None:
        """Store the password digest for an account."""
        ...

    async def find_credentials(self, owner_id: int) -> list[Credential]:
        """Return the credential rows for an account id."""
        ...

    # -- Media records ---------------------------------------------------------

    async def insert_media(self, record: MediaRecord) -> int:
        """Insert a media row and return its assigned id.

        Args:
            record: The record to insert (its ``id`` is ignored).

        Returns:
            The store-assigned media id.
        """
        ...

    async def update_media(self, record: MediaRecord) -> None:
        """Overwrite the mutable fields of the row with ``record.id``."""
        ...

    async def delete_media(self, media_id: int) -> None:
        """Delete the media row with this id."""
        ...

    async def get_media(self, media_id: int) -> MediaRecord | None:
        """Return the media row with this id, or None."""
        ...

    async def count_media(self, predicate: Predicate) -> int:
        """Count media rows matching ``predicate``."""
        ...

    async def select_media(
        self, predicate: Predicate, limit: int, offset: int
    ) -> list[MediaRecord]:
        """Return matching media rows ordered by id, paginated.

        Args:
            predicate: Row filter.
            limit: Maximum number of rows.
            offset: Number of matching rows to skip.
        """
        ...
