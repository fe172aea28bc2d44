"""Event indexer - ingests stream contract events into the history log."""

from __future__ import annotations

import asyncio
import logging

from stellar_stream.errors import DecodeError
from stellar_stream.interfaces.event_log import EventLog
from stellar_stream.interfaces.ledger import LedgerClient
from stellar_stream.models.events import (
    RawEvent,
    StreamCanceled,
    StreamClaimed,
    StreamCreated,
    StreamEvent,
    StreamEventType,
    UnrecognizedEvent,
)
from stellar_stream.stellar.decode import decode_event

log = logging.getLogger(__name__)

DEFAULT_BACKFILL_LEDGERS = 100


def to_stream_event(raw: RawEvent) -> StreamEvent | None:
    """Decode a raw contract event into a history row.

    Returns None for events we do not index. Raises DecodeError when a
    recognized event is malformed.
    """
    event = decode_event(raw)
    common = dict(timestamp=raw.ledger_closed_at, ledger_event_id=raw.id)

    if isinstance(event, StreamCreated):
        return StreamEvent(
            stream_id=str(event.stream_id),
            event_type=StreamEventType.CREATED,
            actor=event.sender,
            amount=event.total_amount,
            metadata={
                "recipient": event.recipient,
                "token": event.token,
                "startTime": event.start_time,
                "endTime": event.end_time,
            },
            **common,
        )
    if isinstance(event, StreamClaimed):
        return StreamEvent(
            stream_id=str(event.stream_id),
            event_type=StreamEventType.CLAIMED,
            actor=event.recipient,
            amount=event.amount,
            **common,
        )
    if isinstance(event, StreamCanceled):
        return StreamEvent(
            stream_id=str(event.stream_id),
            event_type=StreamEventType.CANCELED,
            actor=event.sender,
            **common,
        )
    if isinstance(event, UnrecognizedEvent):
        log.debug("Ignoring event %s (%s/%s)", raw.id, event.category, event.sub_type)
    return None


class EventIndexer:
    """Polls the ledger for stream contract events and appends them to the log.

    Holds a single cursor: the last ledger whose events are fully recorded.
    Each tick processes the window (cursor, latest] and only then moves the
    cursor, so a tick that fails part-way is retried in full next time.
    Rows carry the ledger event id, which the log uses to drop duplicates.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        event_log: EventLog,
        contract_id: str,
        backfill_ledgers: int = DEFAULT_BACKFILL_LEDGERS,
    ) -> None:
        self._ledger = ledger
        self._log = event_log
        self._contract_id = contract_id
        self._backfill = backfill_ledgers
        self._cursor = 0
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()
        self._tick_lock = asyncio.Lock()

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def restore_cursor(self) -> None:
        """Resume from the persisted cursor, if any."""
        saved = await self._log.get_cursor()
        if saved:
            self._cursor = saved
            log.info("Restored indexer cursor: ledger %d", saved)

    # ── Tick ───────────────────────────────────────────────

    async def tick(self) -> int:
        """Run one indexing pass. Returns the number of events recorded.

        Never raises: failures are logged and the cursor stays put.
        """
        async with self._tick_lock:
            try:
                return await self._index_window()
            except Exception as exc:
                log.error("Indexer tick failed at cursor %d: %s", self._cursor, exc, exc_info=True)
                return 0

    async def _index_window(self) -> int:
        latest = await self._ledger.get_latest_ledger_sequence()

        if self._cursor == 0:
            self._cursor = max(1, latest - self._backfill)
            log.info("No cursor, starting from ledger %d (latest %d)", self._cursor, latest)

        if latest <= self._cursor:
            return 0

        raw_events = await self._ledger.get_events(self._cursor, latest, self._contract_id)

        rows: list[StreamEvent] = []
        for raw in raw_events:
            if not raw.in_successful_contract_call:
                continue
            try:
                row = to_stream_event(raw)
            except DecodeError as exc:
                log.warning("Skipping malformed event %s: %s", raw.id, exc)
                continue
            if row is not None:
                rows.append(row)

        inserted = await self._log.append(rows) if rows else 0
        await self._log.set_cursor(latest)
        self._cursor = latest

        if rows:
            log.info(
                "Indexed %d events (%d new) up to ledger %d", len(rows), inserted, latest,
            )
        return inserted

    # ── Local history entries ──────────────────────────────

    async def record_start_time_update(
        self, stream_id: str, old_start_at: int, new_start_at: int, at: int, actor: str | None = None
    ) -> StreamEvent:
        """Append a locally originated start_time_updated row."""
        event = StreamEvent(
            stream_id=stream_id,
            event_type=StreamEventType.START_TIME_UPDATED,
            timestamp=at,
            actor=actor,
            metadata={"oldStartAt": old_start_at, "newStartAt": new_start_at},
        )
        await self._log.append([event])
        return event

    # ── Lifecycle ──────────────────────────────────────────

    def start(self, interval: float = 10.0) -> None:
        """Start the polling loop. The first tick runs immediately."""
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(interval))
        log.info("Starting event indexer with %.1fs interval", interval)

    async def stop(self) -> None:
        """Stop the loop. An in-flight tick is allowed to finish."""
        self._stopping.set()
        if self._task:
            await self._task
            self._task = None
            log.info("Event indexer stopped")

    async def _loop(self, interval: float) -> None:
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
