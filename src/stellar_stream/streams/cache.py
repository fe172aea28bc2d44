"""In-memory stream cache owned by the synchronizer."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable

from stellar_stream.models.records import StreamRecord

log = logging.getLogger(__name__)


class StreamCache:
    """Map of StreamRecord keyed by stream id.

    Writers serialize on a single asyncio lock and swap in a fresh dict on
    every mutation; readers take the current dict without locking, so a
    reader never observes a half-applied update. Records are frozen and
    never deleted.
    """

    def __init__(self) -> None:
        self._streams: dict[str, StreamRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    # ── Lifecycle ──────────────────────────────────────────

    def init(self, records: Iterable[StreamRecord] = ()) -> None:
        """Seed the cache, e.g. from the persisted snapshot at startup."""
        self._streams = {r.id: r for r in records}
        log.info("Stream cache initialized with %d records", len(self._streams))

    def reset(self) -> None:
        self._streams = {}

    # ── Reads (lock-free snapshots) ────────────────────────

    def get(self, stream_id: str) -> StreamRecord | None:
        return self._streams.get(stream_id)

    def snapshot(self) -> list[StreamRecord]:
        return list(self._streams.values())

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._streams

    # ── Writes (caller must hold the lock) ─────────────────

    def put_many(self, records: Iterable[StreamRecord]) -> None:
        updated = dict(self._streams)
        for record in records:
            updated[record.id] = record
        self._streams = updated

    def put(self, record: StreamRecord) -> None:
        self.put_many([record])

    def update(
        self, stream_id: str, fn: Callable[[StreamRecord], StreamRecord]
    ) -> StreamRecord | None:
        """Apply fn to one entry and store the result. Returns None if absent."""
        current = self._streams.get(stream_id)
        if current is None:
            return None
        new = fn(current)
        if new is not current:
            self.put(new)
        return new
