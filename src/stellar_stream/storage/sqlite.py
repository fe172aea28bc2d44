"""SQLite implementation of the EventLog and stream snapshot protocols."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import aiosqlite

from stellar_stream.models.events import StreamEvent, StreamEventType
from stellar_stream.models.records import StreamRecord

SCHEMA = """
-- Indexer cursor for resumption
CREATE TABLE IF NOT EXISTS indexer_cursor (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_ledger INTEGER NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Local mirror of the stream cache
CREATE TABLE IF NOT EXISTS streams (
    id TEXT PRIMARY KEY,
    sender TEXT NOT NULL,
    recipient TEXT NOT NULL,
    asset_code TEXT NOT NULL,
    total_amount TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL,
    start_at INTEGER NOT NULL,
    created_at INTEGER NOT NULL,
    canceled_at INTEGER,
    completed_at INTEGER,
    local_start_at INTEGER
);

-- Append-only stream history
CREATE TABLE IF NOT EXISTS stream_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    stream_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    actor TEXT,
    amount TEXT,
    metadata TEXT,
    ledger_event_id TEXT UNIQUE
);
CREATE INDEX IF NOT EXISTS idx_stream_events_stream_id ON stream_events(stream_id);
CREATE INDEX IF NOT EXISTS idx_stream_events_timestamp ON stream_events(timestamp);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteEventLog:
    """SQLite-backed stream history, indexer cursor and stream snapshot store.

    Events are only ever inserted. A row carrying a ledger event id is
    inserted at most once, so re-processing an indexer window is harmless.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        if self._db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Event log not initialized. Call initialize() first."
        return self._db

    # ── Cursor ─────────────────────────────────────────────

    async def get_cursor(self) -> int | None:
        async with self.db.execute("SELECT last_ledger FROM indexer_cursor WHERE id=1") as cur:
            row = await cur.fetchone()
            return row["last_ledger"] if row else None

    async def set_cursor(self, ledger: int) -> None:
        await self.db.execute(
            "INSERT INTO indexer_cursor (id, last_ledger, updated_at) VALUES (1, ?, ?)"
            " ON CONFLICT(id) DO UPDATE SET last_ledger=excluded.last_ledger,"
            " updated_at=excluded.updated_at",
            (ledger, _now()),
        )
        await self.db.commit()

    # ── Stream events ──────────────────────────────────────

    async def append(self, events: list[StreamEvent]) -> int:
        """Insert events in a single commit. Returns the number of new rows."""
        inserted = 0
        for event in events:
            cur = await self.db.execute(
                "INSERT OR IGNORE INTO stream_events"
                " (stream_id, event_type, timestamp, actor, amount, metadata, ledger_event_id)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    event.stream_id,
                    StreamEventType(event.event_type).value,
                    event.timestamp,
                    event.actor,
                    str(event.amount) if event.amount is not None else None,
                    json.dumps(event.metadata) if event.metadata is not None else None,
                    event.ledger_event_id,
                ),
            )
            if cur.rowcount:
                event.id = cur.lastrowid
                inserted += 1
            await cur.close()
        await self.db.commit()
        return inserted

    async def get_stream_history(self, stream_id: str) -> list[StreamEvent]:
        async with self.db.execute(
            "SELECT * FROM stream_events WHERE stream_id=? ORDER BY timestamp ASC, id ASC",
            (stream_id,),
        ) as cur:
            return [_row_to_event(row) async for row in cur]

    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[StreamEvent]:
        async with self.db.execute(
            "SELECT * FROM stream_events ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ) as cur:
            return [_row_to_event(row) async for row in cur]

    async def count_events(self) -> int:
        async with self.db.execute("SELECT COUNT(*) AS c FROM stream_events") as cur:
            row = await cur.fetchone()
            return row["c"] if row else 0

    # ── Stream snapshot ────────────────────────────────────

    async def save_stream(self, record: StreamRecord) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO streams"
            " (id, sender, recipient, asset_code, total_amount, duration_seconds,"
            "  start_at, created_at, canceled_at, completed_at, local_start_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id, record.sender, record.recipient, record.asset_code,
                str(record.total_amount), record.duration_seconds, record.start_at,
                record.created_at, record.canceled_at, record.completed_at,
                record.local_start_at,
            ),
        )
        await self.db.commit()

    async def load_streams(self) -> list[StreamRecord]:
        async with self.db.execute("SELECT * FROM streams ORDER BY created_at") as cur:
            return [_row_to_stream(row) async for row in cur]


# ── Row converters ─────────────────────────────────────────


def _row_to_event(row: aiosqlite.Row) -> StreamEvent:
    return StreamEvent(
        id=row["id"],
        stream_id=row["stream_id"],
        event_type=StreamEventType(row["event_type"]),
        timestamp=row["timestamp"],
        actor=row["actor"],
        amount=Decimal(row["amount"]) if row["amount"] is not None else None,
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        ledger_event_id=row["ledger_event_id"],
    )


def _row_to_stream(row: aiosqlite.Row) -> StreamRecord:
    return StreamRecord(
        id=row["id"],
        sender=row["sender"],
        recipient=row["recipient"],
        asset_code=row["asset_code"],
        total_amount=Decimal(row["total_amount"]),
        duration_seconds=row["duration_seconds"],
        start_at=row["start_at"],
        created_at=row["created_at"],
        canceled_at=row["canceled_at"],
        completed_at=row["completed_at"],
        local_start_at=row["local_start_at"],
    )
