"""aiosqlite persistence layer for gig documents and notifications.

A gig is stored as one row.  Scalar fields map to columns; the report list
is a JSON document in the ``reports`` column.  The ``version`` column is the
compare-and-swap token that ``GigStore.update`` checks on every write.

Schema changes are applied in order by :meth:`Database.migrate`, which
records the last applied step in SQLite's ``user_version`` pragma.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite

from gigflow.utils.logger import get_logger

log = get_logger(__name__, component="database")

MEMORY = ":memory:"

# Columns holding JSON documents, with the value used when one is unreadable.
_JSON_COLUMNS: dict[str, Any] = {"reports": [], "payload": {}}

_MIGRATIONS: tuple[str, ...] = (
    # 1: gig documents
    """
    CREATE TABLE gigs (
        id                        TEXT    PRIMARY KEY,
        title                     TEXT    NOT NULL DEFAULT '',
        client_id                 TEXT    NOT NULL,
        worker_id                 TEXT    NOT NULL,
        status                    TEXT    NOT NULL DEFAULT 'in-progress'
            CHECK(status IN ('in-progress', 'awaiting-payout', 'completed')),
        deadline                  TEXT,
        created_at                TEXT    NOT NULL,
        updated_at                TEXT    NOT NULL,
        budget                    REAL    NOT NULL DEFAULT 0,
        currency                  TEXT    NOT NULL DEFAULT 'INR',
        number_of_reports         INTEGER NOT NULL DEFAULT 0,
        reports                   TEXT    NOT NULL DEFAULT '[]',
        payment_requests_count    INTEGER NOT NULL DEFAULT 0
            CHECK(payment_requests_count BETWEEN 0 AND 5),
        last_payment_requested_at TEXT,
        payment_request_pending   INTEGER NOT NULL DEFAULT 0,
        version                   INTEGER NOT NULL DEFAULT 0
    );
    CREATE INDEX idx_gigs_status ON gigs(status);
    """,
    # 2: notification feed
    """
    CREATE TABLE notifications (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        recipient_id TEXT    NOT NULL,
        kind         TEXT    NOT NULL,
        message      TEXT    NOT NULL,
        gig_id       TEXT,
        payload      TEXT    NOT NULL DEFAULT '{}',
        created_at   TEXT    NOT NULL
    );
    CREATE INDEX idx_notifications_recipient ON notifications(recipient_id);
    """,
)


class Database:
    """Own one aiosqlite connection and run queries on it.

    Parameters
    ----------
    db_path:
        SQLite file, or ``":memory:"`` for a throwaway database.  Missing
        parent directories of a file path are created on connect.
    """

    def __init__(self, db_path: str = "data/gigflow.db") -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the connection and bring the schema up to date."""
        if self._db_path != MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        if self._db_path != MEMORY:
            await conn.execute("PRAGMA journal_mode=WAL")
        self._conn = conn
        log.info("database_connected", path=self._db_path)
        await self.migrate()

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        log.info("database_closed", path=self._db_path)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._conn

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def schema_version(self) -> int:
        cursor = await self.conn.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def migrate(self) -> int:
        """Apply pending migrations and return the resulting schema version."""
        current = await self.schema_version()
        for step, script in enumerate(_MIGRATIONS[current:], start=current + 1):
            # executescript commits first, so the version bump rides along.
            await self.conn.executescript(f"{script}\nPRAGMA user_version = {step};")
            log.info("database_migrated", version=step)
        return max(current, len(_MIGRATIONS))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Run one statement, commit, and return the cursor.

        ``cursor.rowcount`` is how callers tell whether a guarded ``UPDATE``
        matched.
        """
        cursor = await self.conn.execute(sql, params)
        await self.conn.commit()
        return cursor

    async def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
        cursor = await self.conn.execute(sql, params)
        row = await cursor.fetchone()
        return None if row is None else self._decode(row)

    async def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        cursor = await self.conn.execute(sql, params)
        return [self._decode(row) for row in await cursor.fetchall()]

    @staticmethod
    def _decode(row: aiosqlite.Row) -> dict[str, Any]:
        """Turn a row into a dict, parsing the JSON document columns."""
        data = dict(row)
        for column, fallback in _JSON_COLUMNS.items():
            raw = data.get(column)
            if not isinstance(raw, str):
                continue
            try:
                data[column] = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("database_bad_json", column=column, row_id=data.get("id"))
                data[column] = type(fallback)()
        return data
