"""SQLite-backed metadata store for PicShare.

Implements the MetadataStore protocol using aiosqlite for async access.
All tables use CREATE TABLE IF NOT EXISTS for schema idempotency. Every
statement binds its values as parameters; predicate SQL is produced by
``picshare.metadata.predicates`` from whitelisted column names only.
"""

import logging
from datetime import datetime, timezone

import aiosqlite

from picshare.metadata.models import Account, Credential, MediaRecord
from picshare.metadata.predicates import Predicate

logger = logging.getLogger(__name__)

_MEDIA_COLUMNS = "id, owner_id, title, reference, size, encoding, shareable"


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _row_to_media(row: aiosqlite.Row) -> MediaRecord:
    return MediaRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        reference=row["reference"],
        size=row["size"],
        encoding=row["encoding"],
        shareable=bool(row["shareable"]),
    )


class SQLiteMetadataStore:
    """Metadata store backed by a local SQLite database.

    Attributes:
        db_path: Path to the SQLite database file.
        _db: The aiosqlite connection, set after init_db().
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite metadata store.

        Args:
            db_path: Filesystem path to the SQLite database file.
                     Use ':memory:' for an in-memory database (useful in tests).
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def init_db(self) -> None:
        """Open the database and create tables if they do not exist.

        Sets WAL journal mode, NORMAL synchronous, enables foreign keys,
        and sets a 5-second busy timeout. Idempotent, safe to call on every
        startup.
        """
        if self._db is None:
            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA synchronous = NORMAL")
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.execute("PRAGMA busy_timeout = 5000")

        await self._create_tables()

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not already exist."""
        assert self._db is not None

        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name='schema_version'"
        ) as cursor:
            if await cursor.fetchone() is not None:
                return

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS user_meta (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                firstname  TEXT NOT NULL,
                lastname   TEXT NOT NULL,
                email      TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS user_pass (
                id           INTEGER PRIMARY KEY,
                hashed_pass  TEXT NOT NULL,

                FOREIGN KEY (id) REFERENCES user_meta(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS image_meta (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id   INTEGER NOT NULL,
                title      TEXT NOT NULL DEFAULT '',
                reference  TEXT NOT NULL DEFAULT '',
                size       INTEGER NOT NULL DEFAULT 0,
                encoding   TEXT NOT NULL,
                shareable  INTEGER NOT NULL DEFAULT 0,

                FOREIGN KEY (owner_id) REFERENCES user_meta(id)
            );

            CREATE INDEX IF NOT EXISTS idx_image_owner
                ON image_meta(owner_id);
            CREATE INDEX IF NOT EXISTS idx_image_shareable
                ON image_meta(shareable);

            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            );
        """)

        await self._db.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (1, ?)",
            (_now_iso(),),
        )
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def ping(self) -> None:
        """Run ``SELECT 1`` (health probe)."""
        assert self._db is not None
        async with self._db.execute("SELECT 1") as cursor:
            await cursor.fetchone()

    # -- Accounts --------------------------------------------------------------

    async def insert_account(self, account: Account) -> int:
        assert self._db is not None
        cursor = await self._db.execute(
            "INSERT INTO user_meta (firstname, lastname, email) VALUES (?, ?, ?)",
            (account.firstname, account.lastname, account.email),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def delete_account(self, account_id: int) -> None:
        assert self._db is not None
        await self._db.execute("DELETE FROM user_meta WHERE id = ?", (account_id,))
        await self._db.commit()

    async def find_accounts_by_email(self, email: str) -> list[Account]:
        assert self._db is not None
        async with self._db.execute(
            "SELECT id, firstname, lastname, email FROM user_meta WHERE email = ?",
            (email,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            Account(
                id=row["id"],
                firstname=row["firstname"],
                lastname=row["lastname"],
                email=row["email"],
            )
            for row in rows
        ]

    # -- Credentials -----------------------------------------------------------

    async def insert_credential(self, credential: Credential) -> None:
        assert self._db is not None
        await self._db.execute(
            "INSERT INTO user_pass (id, hashed_pass) VALUES (?, ?)",
            (credential.owner_id, credential.hashed_pass),
        )
        await self._db.commit()

    async def find_credentials(self, owner_id: int) -> list[Credential]:
        assert self._db is not None
        async with self._db.execute(
            "SELECT id, hashed_pass FROM user_pass WHERE id = ?", (owner_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [Credential(owner_id=row["id"], hashed_pass=row["hashed_pass"]) for row in rows]

    # -- Media records ---------------------------------------------------------

    async def insert_media(self, record: MediaRecord) -> int:
        assert self._db is not None
        cursor = await self._db.execute(
            """INSERT INTO image_meta (owner_id, title, reference, size, encoding, shareable)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                record.owner_id,
                record.title,
                record.reference,
                record.size,
                record.encoding,
                int(record.shareable),
            ),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def update_media(self, record: MediaRecord) -> None:
        """Overwrite title, reference, size, encoding and shareable.

        ``owner_id`` is immutable and never written by an update.
        """
        assert self._db is not None
        cursor = await self._db.execute(
            """UPDATE image_meta
               SET title = ?, reference = ?, size = ?, encoding = ?, shareable = ?
               WHERE id = ?""",
            (
                record.title,
                record.reference,
                record.size,
                record.encoding,
                int(record.shareable),
                record.id,
            ),
        )
        await self._db.commit()
        if cursor.rowcount == 0:
            raise LookupError(f"No media row with id {record.id}")

    async def delete_media(self, media_id: int) -> None:
        assert self._db is not None
        await self._db.execute("DELETE FROM image_meta WHERE id = ?", (media_id,))
        await self._db.commit()

    async def get_media(self, media_id: int) -> MediaRecord | None:
        assert self._db is not None
        async with self._db.execute(
            f"SELECT {_MEDIA_COLUMNS} FROM image_meta WHERE id = ?", (media_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_media(row) if row is not None else None

    async def count_media(self, predicate: Predicate) -> int:
        assert self._db is not None
        where, params = predicate.to_sql()
        async with self._db.execute(
            f"SELECT COUNT(*) FROM image_meta WHERE {where}", params
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0])

    async def select_media(
        self, predicate: Predicate, limit: int, offset: int
    ) -> list[MediaRecord]:
        assert self._db is not None
        where, params = predicate.to_sql()
        async with self._db.execute(
            f"SELECT {_MEDIA_COLUMNS} FROM image_meta WHERE {where} "
            "ORDER BY id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_media(row) for row in rows]
