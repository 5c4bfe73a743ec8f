"""Tests for scoped, paginated metadata queries."""

import pytest

from picshare.errors import AuthError, InternalError, NotFoundError, OwnerMismatch, ValidationError
from picshare.metadata.memory import MemoryMetadataStore
from picshare.metadata.models import Account, MediaRecord
from picshare.query import QueryEngine, build_predicate, parse_page


class BrokenQueryStore(MemoryMetadataStore):
    async def count_media(self, predicate):
        raise RuntimeError("database is locked")


async def seed(metadata, owner_id: int, count: int, shareable: bool = False,
               encoding: str = "image/png") -> None:
    for i in range(count):
        await metadata.insert_media(
            MediaRecord(owner_id=owner_id, title=f"{i}.png", size=1,
                        encoding=encoding, shareable=shareable)
        )


@pytest.fixture
async def populated(metadata):
    """Alice (1) owns 3 shared + 2 private images; Bob (2) owns 1 private jpeg."""
    await metadata.insert_account(Account("Alice", "A", "alice@example.com"))
    await metadata.insert_account(Account("Bob", "B", "bob@example.com"))
    await seed(metadata, 1, 3, shareable=True)
    await seed(metadata, 1, 2)
    await seed(metadata, 2, 1, encoding="image/jpeg")
    return metadata


class TestParsePage:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, 0), ("0", 0), ("3", 3), ("-2", 0), ("abc", 0), ("", 0),
            ("999999999999999999", 0),
        ],
    )
    def test_parse_page(self, raw, expected):
        assert parse_page(raw) == expected


class TestBuildPredicate:
    def test_no_filters_scopes_to_caller(self):
        sql, params = build_predicate(5, {}).to_sql()
        assert sql == "owner_id = ?"
        assert params == [5]

    def test_page_alone_is_unscoped(self):
        sql, params = build_predicate(5, {"page": "2"}).to_sql()
        assert sql == "owner_id = ?"

    def test_unknown_params_ignored(self):
        sql, _ = build_predicate(5, {"colour": "red"}).to_sql()
        assert sql == "owner_id = ?"

    def test_filters_get_visibility_clause(self):
        sql, params = build_predicate(5, {"uid": "1", "shareable": "false"}).to_sql()
        assert sql == "(owner_id = ? AND shareable = ? AND (owner_id = ? OR shareable = ?))"
        assert params == [1, 0, 5, 1]

    @pytest.mark.parametrize(
        "params",
        [
            {"id": "x"}, {"uid": "1.5"}, {"shareable": "maybe"}, {"id": "-1"},
            {"id": "99999999999999999999"}, {"uid": "\u00b2"},
        ],
    )
    def test_bad_values(self, params):
        with pytest.raises(ValidationError):
            build_predicate(5, params)


class TestQuery:
    async def test_own_library(self, populated):
        page = await QueryEngine(populated).query(1, {})
        assert page.total_results == 5
        assert [r.owner_id for r in page.records] == [1] * 5

    async def test_other_users_private_images_never_visible(self, populated):
        page = await QueryEngine(populated).query(2, {"uid": "1"})
        assert page.total_results == 3
        assert all(r.shareable for r in page.records)

        page = await QueryEngine(populated).query(2, {"uid": "1", "shareable": "false"})
        assert page.total_results == 0

    async def test_filter_own_private(self, populated):
        page = await QueryEngine(populated).query(2, {"encoding": "image/jpeg"})
        assert page.total_results == 1
        assert page.records[0].owner_id == 2

    async def test_pagination(self, metadata):
        await metadata.insert_account(Account("Alice", "A", "alice@example.com"))
        await seed(metadata, 1, 120)
        engine = QueryEngine(metadata)

        sizes = []
        for n in range(4):
            page = await engine.query(1, {"page": str(n)})
            assert page.total_results == 120
            assert page.page == n
            assert page.page_size == 50
            sizes.append(len(page.records))
        assert sizes == [50, 50, 20, 0]

        first = await engine.query(1, {"page": "0"})
        second = await engine.query(1, {"page": "1"})
        assert first.records[-1].id < second.records[0].id

    async def test_huge_page_falls_back_to_first(self, populated):
        page = await QueryEngine(populated).query(1, {"page": "999999999999999999"})
        assert page.page == 0
        assert page.total_results == 5
        assert len(page.records) == 5

    async def test_largest_id_matches_nothing(self, populated):
        page = await QueryEngine(populated).query(1, {"id": str(2**63 - 1)})
        assert page.total_results == 0
        assert page.records == []

    async def test_id_beyond_integer_range(self, populated):
        with pytest.raises(ValidationError):
            await QueryEngine(populated).query(1, {"id": str(2**63)})

    async def test_store_failure(self):
        with pytest.raises(InternalError):
            await QueryEngine(BrokenQueryStore()).query(1, {})

    async def test_envelope(self, populated):
        body = (await QueryEngine(populated).query(2, {})).to_dict()
        assert set(body) == {"page", "pageSize", "totalResults", "imageMeta"}
        assert set(body["imageMeta"][0]) == {
            "id", "uid", "title", "ref", "size", "encoding", "shareable"
        }


class TestGetRecord:
    async def test_owner_reads_private(self, populated):
        record = await QueryEngine(populated).get_record(1, 1, 4)
        assert record.id == 4

    async def test_other_reads_shared(self, populated):
        record = await QueryEngine(populated).get_record(2, 1, 1)
        assert record.shareable

    async def test_other_denied_private(self, populated):
        with pytest.raises(AuthError):
            await QueryEngine(populated).get_record(2, 1, 4)

    async def test_path_owner_mismatch(self, populated):
        with pytest.raises(OwnerMismatch):
            await QueryEngine(populated).get_record(1, 2, 1)

    async def test_missing(self, populated):
        with pytest.raises(NotFoundError):
            await QueryEngine(populated).get_record(1, 1, 999)
