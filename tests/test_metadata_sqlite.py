"""Tests for the metadata stores.

Behavioural tests run against both the SQLite store (file in tmp_path) and
the in-memory store so the two answer the same queries identically.
"""

import pytest

from picshare.metadata.memory import MemoryMetadataStore
from picshare.metadata.models import Account, Credential, MediaRecord
from picshare.metadata.predicates import AllOf, AnyOf, all_of, any_of, eq
from picshare.metadata.sqlite import SQLiteMetadataStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(params=["sqlite", "memory"])
async def store(request, tmp_path):
    """A fresh metadata store of each kind."""
    if request.param == "sqlite":
        s = SQLiteMetadataStore(str(tmp_path / "test.db"))
    else:
        s = MemoryMetadataStore()
    await s.init_db()
    yield s
    await s.close()


@pytest.fixture
async def sqlite_store(tmp_path):
    s = SQLiteMetadataStore(str(tmp_path / "test.db"))
    await s.init_db()
    yield s
    await s.close()


async def add_account(store, email: str) -> int:
    return await store.insert_account(Account(firstname="F", lastname="L", email=email))


def media(owner_id: int, title: str = "a.png", shareable: bool = False) -> MediaRecord:
    return MediaRecord(
        owner_id=owner_id, title=title, size=10, encoding="image/png", shareable=shareable
    )


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchemaIdempotency:
    """Test that init_db can be called multiple times without error."""

    async def test_init_db_twice(self, tmp_path):
        db_path = str(tmp_path / "idempotent.db")
        s = SQLiteMetadataStore(db_path)
        await s.init_db()
        await s.init_db()
        await s.close()

    async def test_schema_version_exists(self, sqlite_store):
        assert sqlite_store._db is not None
        async with sqlite_store._db.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
            assert row is not None
            assert row[0] == 1

    async def test_data_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "persist.db")
        s = SQLiteMetadataStore(db_path)
        await s.init_db()
        await add_account(s, "a@example.com")
        await s.close()

        s = SQLiteMetadataStore(db_path)
        await s.init_db()
        assert len(await s.find_accounts_by_email("a@example.com")) == 1
        await s.close()

    async def test_ping(self, store):
        await store.ping()


# ---------------------------------------------------------------------------
# Accounts and credentials
# ---------------------------------------------------------------------------


class TestAccounts:
    """Account and credential operations."""

    async def test_insert_assigns_increasing_ids(self, store):
        first = await add_account(store, "a@example.com")
        second = await add_account(store, "b@example.com")
        assert first >= 1
        assert second > first

    async def test_find_by_email(self, store):
        account_id = await add_account(store, "a@example.com")
        [found] = await store.find_accounts_by_email("a@example.com")
        assert found.id == account_id
        assert found.email == "a@example.com"
        assert await store.find_accounts_by_email("missing@example.com") == []

    async def test_duplicate_email_rejected(self, store):
        await add_account(store, "a@example.com")
        with pytest.raises(Exception):
            await add_account(store, "a@example.com")

    async def test_credential_round_trip(self, store):
        account_id = await add_account(store, "a@example.com")
        await store.insert_credential(Credential(owner_id=account_id, hashed_pass="$2b$x"))
        [cred] = await store.find_credentials(account_id)
        assert cred.hashed_pass == "$2b$x"
        assert await store.find_credentials(account_id + 1) == []

    async def test_delete_account_removes_credential(self, store):
        account_id = await add_account(store, "a@example.com")
        await store.insert_credential(Credential(owner_id=account_id, hashed_pass="h"))
        await store.delete_account(account_id)
        assert await store.find_accounts_by_email("a@example.com") == []
        assert await store.find_credentials(account_id) == []


# ---------------------------------------------------------------------------
# Media records
# ---------------------------------------------------------------------------


class TestMedia:
    """Media record CRUD and predicate queries."""

    async def test_insert_and_get(self, store):
        owner = await add_account(store, "a@example.com")
        media_id = await store.insert_media(media(owner))
        record = await store.get_media(media_id)
        assert record is not None
        assert record.id == media_id
        assert record.owner_id == owner
        assert record.reference == ""
        assert record.shareable is False

    async def test_get_missing(self, store):
        assert await store.get_media(42) is None

    async def test_update_overwrites_fields_but_not_owner(self, store):
        owner = await add_account(store, "a@example.com")
        other = await add_account(store, "b@example.com")
        media_id = await store.insert_media(media(owner))

        record = await store.get_media(media_id)
        record.title = "b.png"
        record.reference = "http://x/image/1/1.png"
        record.shareable = True
        record.owner_id = other
        await store.update_media(record)

        updated = await store.get_media(media_id)
        assert updated.title == "b.png"
        assert updated.reference == "http://x/image/1/1.png"
        assert updated.shareable is True
        assert updated.owner_id == owner

    async def test_update_missing_raises(self, store):
        record = media(1)
        record.id = 99
        with pytest.raises(LookupError):
            await store.update_media(record)

    async def test_delete(self, store):
        owner = await add_account(store, "a@example.com")
        media_id = await store.insert_media(media(owner))
        await store.delete_media(media_id)
        assert await store.get_media(media_id) is None

    async def test_predicate_query(self, store):
        alice = await add_account(store, "a@example.com")
        bob = await add_account(store, "b@example.com")
        await store.insert_media(media(alice, shareable=True))
        await store.insert_media(media(alice))
        await store.insert_media(media(bob))

        visible_to_bob = all_of(
            eq("owner_id", alice), any_of(eq("owner_id", bob), eq("shareable", True))
        )
        assert await store.count_media(visible_to_bob) == 1
        [record] = await store.select_media(visible_to_bob, limit=10, offset=0)
        assert record.owner_id == alice
        assert record.shareable is True

    async def test_select_orders_by_id_and_paginates(self, store):
        owner = await add_account(store, "a@example.com")
        ids = [await store.insert_media(media(owner, title=f"{i}.png")) for i in range(5)]
        predicate = eq("owner_id", owner)
        assert await store.count_media(predicate) == 5
        first = await store.select_media(predicate, limit=2, offset=0)
        last = await store.select_media(predicate, limit=2, offset=4)
        assert [r.id for r in first] == ids[:2]
        assert [r.id for r in last] == ids[4:]
        assert await store.select_media(predicate, limit=2, offset=10) == []

    async def test_empty_combinators(self, store):
        owner = await add_account(store, "a@example.com")
        await store.insert_media(media(owner))
        assert await store.count_media(AllOf(())) == 1
        assert await store.count_media(AnyOf(())) == 0


class TestPredicates:
    """Predicate compilation."""

    def test_values_are_bound(self):
        sql, params = all_of(eq("title", "x' OR 1=1 --"), eq("shareable", True)).to_sql()
        assert sql == "(title = ? AND shareable = ?)"
        assert params == ["x' OR 1=1 --", 1]

    def test_unknown_column_rejected(self):
        with pytest.raises(ValueError):
            eq("hashed_pass", "x")
