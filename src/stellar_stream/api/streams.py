"""Stream API - the operations exposed to the HTTP layer."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Mapping

from stellar_stream.errors import ValidationError
from stellar_stream.indexer.indexer import EventIndexer
from stellar_stream.interfaces.clock import Clock
from stellar_stream.interfaces.event_log import EventLog
from stellar_stream.models.events import StreamEvent
from stellar_stream.models.records import StreamProgress, StreamRecord, StreamStatus
from stellar_stream.policy.validation import StreamInputValidator, is_valid_stream_id
from stellar_stream.streams import progress
from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.synchronizer import StreamSynchronizer

log = logging.getLogger(__name__)


def stream_to_dict(stream: StreamRecord, prog: StreamProgress | None = None) -> dict[str, Any]:
    """JSON-friendly view of a stream, optionally with its progress."""
    data = asdict(stream)
    data["total_amount"] = str(stream.total_amount)
    if prog is not None:
        data["progress"] = {
            "status": prog.status.value,
            "rate_per_second": str(prog.rate_per_second),
            "elapsed_seconds": prog.elapsed_seconds,
            "vested_amount": str(prog.vested_amount),
            "remaining_amount": str(prog.remaining_amount),
            "percent_complete": str(prog.percent_complete),
        }
    return data


class StreamAPI:
    """Reads the cache, computes progress, and routes mutations to their owners.

    Creation, cancellation and start-time changes go through the
    synchronizer. History reads go to the event log; the only history row
    written from here is start_time_updated, and that goes through the indexer.
    """

    def __init__(
        self,
        cache: StreamCache,
        synchronizer: StreamSynchronizer,
        validator: StreamInputValidator,
        clock: Clock,
        event_log: EventLog | None = None,
        indexer: EventIndexer | None = None,
    ) -> None:
        self._cache = cache
        self._sync = synchronizer
        self._validator = validator
        self._clock = clock
        self._event_log = event_log
        self._indexer = indexer

    def attach_indexer(self, indexer: EventIndexer | None) -> None:
        self._indexer = indexer

    # ── Reads ──────────────────────────────────────────────

    def list_streams(self) -> list[StreamRecord]:
        """Cache snapshot in no particular order."""
        return self._cache.snapshot()

    def list_streams_with_progress(
        self,
        status: StreamStatus | str | None = None,
        asset: str | None = None,
        sender: str | None = None,
        recipient: str | None = None,
        at: int | None = None,
    ) -> list[tuple[StreamRecord, StreamProgress]]:
        """Newest first, filtered case-insensitively by asset and parties."""
        at = self._clock.now() if at is None else at
        wanted = StreamStatus(status) if status else None
        rows = []
        for stream in sorted(self._cache.snapshot(), key=lambda s: s.created_at, reverse=True):
            prog = progress.compute(stream, at)
            if wanted is not None and prog.status != wanted:
                continue
            if asset and stream.asset_code.lower() != asset.lower():
                continue
            if sender and stream.sender.lower() != sender.lower():
                continue
            if recipient and stream.recipient.lower() != recipient.lower():
                continue
            rows.append((stream, prog))
        return rows

    def get_stream(self, stream_id: str) -> StreamRecord | None:
        return self._cache.get(stream_id)

    def calculate_progress(self, stream: StreamRecord, at: int | None = None) -> StreamProgress:
        return progress.compute(stream, self._clock.now() if at is None else at)

    async def get_stream_history(self, stream_id: str) -> list[StreamEvent]:
        if self._event_log is None:
            return []
        return await self._event_log.get_stream_history(stream_id)

    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[StreamEvent]:
        if self._event_log is None:
            return []
        return await self._event_log.get_all_events(limit=limit, offset=offset)

    # ── Mutations ──────────────────────────────────────────

    async def create_stream(self, payload: Mapping[str, Any]) -> StreamRecord:
        """Validate and create a stream on-chain.

        Raises ValidationError, ConfigurationError, LedgerRejected or
        LedgerTimeout. A LedgerTimeout means the outcome is unknown.
        """
        stream_input = self._validator.validate(payload)
        return await self._sync.create_stream(stream_input)

    async def cancel_stream(self, stream_id: str) -> StreamRecord | None:
        return await self._sync.cancel_stream(stream_id)

    async def update_stream_start_at(
        self, stream_id: str, start_at: int, actor: str | None = None
    ) -> StreamRecord | None:
        if not is_valid_stream_id(stream_id):
            raise ValidationError([("id", "Stream ID must be a positive integer.")])
        if start_at <= 0:
            raise ValidationError([("startAt", "startAt must be a valid UNIX timestamp in seconds.")])

        before = self._cache.get(stream_id)
        updated = await self._sync.update_start_at(stream_id, start_at)
        if updated is None or before is None:
            return updated

        if self._indexer is not None:
            try:
                await self._indexer.record_start_time_update(
                    stream_id, before.start_at, start_at, self._clock.now(), actor,
                )
            except Exception as exc:
                log.error("Failed to record start time update for %s: %s", stream_id, exc)
        return updated
