"""SQLite durable tier for the long-term interaction archive."""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite

from dialogue_memory.config import DB_PATH
from dialogue_memory.models import Interaction

_SCHEMA = """
CREATE TABLE IF NOT EXISTS interactions (
    id                TEXT PRIMARY KEY,
    timestamp         TEXT NOT NULL,
    session_id        TEXT,
    user_id           TEXT,
    input             TEXT NOT NULL,
    response          TEXT NOT NULL,
    category          INTEGER,
    confidence        REAL,
    similarity        REAL,
    transition_phrase TEXT,
    summary           TEXT,
    record            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_interactions_timestamp ON interactions(timestamp);
CREATE INDEX IF NOT EXISTS idx_interactions_session ON interactions(session_id);
"""


class SQLiteStore:
    """Async SQLite store for archived interactions.

    Writes are idempotent by interaction id, so re-flushing a batch after a
    partial failure never produces duplicate rows.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DB_PATH
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "SQLiteStore not initialized, call initialize() first"
        return self._db

    async def insert_many(self, records: list[Interaction]) -> int:
        """Insert a batch in one transaction. Returns the number of rows written."""
        if not records:
            return 0
        rows = [
            (
                r.id, r.timestamp, r.session_id, r.user_id, r.input, r.response,
                r.category, r.confidence, r.similarity, r.transition_phrase,
                r.summary, json.dumps(r.to_dict()),
            )
            for r in records
        ]
        cur = await self.db.executemany(
            """INSERT OR IGNORE INTO interactions
            (id, timestamp, session_id, user_id, input, response, category,
             confidence, similarity, transition_phrase, summary, record)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?)""",
            rows,
        )
        await self.db.commit()
        return cur.rowcount

    async def get_interaction(self, interaction_id: str) -> Interaction | None:
        async with self.db.execute(
            "SELECT record FROM interactions WHERE id = ?", (interaction_id,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_interaction(row) if row else None

    async def load_recent(self, limit: int = 100, offset: int = 0) -> list[Interaction]:
        """Most recent archived interactions, newest first."""
        records = []
        async with self.db.execute(
            "SELECT record FROM interactions ORDER BY timestamp DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ) as cur:
            async for row in cur:
                records.append(_row_to_interaction(row))
        return records

    async def count(self, session_id: str | None = None) -> int:
        if session_id:
            sql = "SELECT COUNT(*) as cnt FROM interactions WHERE session_id = ?"
            params: tuple = (session_id,)
        else:
            sql = "SELECT COUNT(*) as cnt FROM interactions"
            params = ()
        async with self.db.execute(sql, params) as cur:
            row = await cur.fetchone()
            return row["cnt"] if row else 0


def _row_to_interaction(row: aiosqlite.Row) -> Interaction:
    return Interaction.from_dict(json.loads(row["record"]))
