"""In-memory metadata store for PicShare.

Useful for testing and ephemeral deployments. Data is lost on restart.
Identifiers are allocated from per-table counters under an asyncio lock, so
concurrent inserts never share an id.
"""

import asyncio
import dataclasses
import itertools

from picshare.metadata.models import Account, Credential, MediaRecord
from picshare.metadata.predicates import Predicate


class MemoryMetadataStore:
    """In-memory metadata store using Python dicts."""

    def __init__(self) -> None:
        self._accounts: dict[int, Account] = {}
        self._credentials: dict[int, Credential] = {}
        self._media: dict[int, MediaRecord] = {}
        self._account_ids = itertools.count(1)
        self._media_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def init_db(self) -> None:
        pass

    async def close(self) -> None:
        self._accounts.clear()
        self._credentials.clear()
        self._media.clear()

    async def ping(self) -> None:
        pass

    # -- Accounts --------------------------------------------------------------

    async def insert_account(self, account: Account) -> int:
        async with self._lock:
            if any(a.email == account.email for a in self._accounts.values()):
                raise KeyError(f"Email already registered: {account.email}")
            account_id = next(self._account_ids)
            self._accounts[account_id] = dataclasses.replace(account, id=account_id)
            return account_id

    async def delete_account(self, account_id: int) -> None:
        self._accounts.pop(account_id, None)
        self._credentials.pop(account_id, None)

    async def find_accounts_by_email(self, email: str) -> list[Account]:
        return [dataclasses.replace(a) for a in self._accounts.values() if a.email == email]

    # -- Credentials -----------------------------------------------------------

    async def insert_credential(self, credential: Credential) -> None:
        if credential.owner_id not in self._accounts:
            raise KeyError(f"No account with id {credential.owner_id}")
        if credential.owner_id in self._credentials:
            raise KeyError(f"Credential already exists for {credential.owner_id}")
        self._credentials[credential.owner_id] = dataclasses.replace(credential)

    async def find_credentials(self, owner_id: int) -> list[Credential]:
        cred = self._credentials.get(owner_id)
        return [dataclasses.replace(cred)] if cred is not None else []

    # -- Media records ---------------------------------------------------------

    async def insert_media(self, record: MediaRecord) -> int:
        async with self._lock:
            media_id = next(self._media_ids)
            self._media[media_id] = dataclasses.replace(record, id=media_id)
            return media_id

    async def update_media(self, record: MediaRecord) -> None:
        current = self._media.get(record.id)
        if current is None:
            raise LookupError(f"No media row with id {record.id}")
        self._media[record.id] = dataclasses.replace(record, owner_id=current.owner_id)

    async def delete_media(self, media_id: int) -> None:
        self._media.pop(media_id, None)

    async def get_media(self, media_id: int) -> MediaRecord | None:
        record = self._media.get(media_id)
        return dataclasses.replace(record) if record is not None else None

    async def count_media(self, predicate: Predicate) -> int:
        return sum(1 for r in self._media.values() if predicate.matches(r))

    async def select_media(
        self, predicate: Predicate, limit: int, offset: int
    ) -> list[MediaRecord]:
        matching = [r for _, r in sorted(self._media.items()) if predicate.matches(r)]
        return [dataclasses.replace(r) for r in matching[offset:offset + limit]]
