"""EventLog protocol - durable append-only stream history plus indexer cursor."""

from __future__ import annotations

from typing import Protocol

from stellar_stream.models.events import StreamEvent
from stellar_stream.models.records import StreamRecord


class EventLog(Protocol):
    """Append-only store of StreamEvent rows. No updates, no deletes."""

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    async def append(self, events: list[StreamEvent]) -> int:
        """Durably append events in one commit. Returns rows actually inserted."""
        ...

    async def get_stream_history(self, stream_id: str) -> list[StreamEvent]:
        """Events for a stream ordered by (timestamp, id) ascending."""
        ...

    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[StreamEvent]:
        """Most recent events first."""
        ...

    async def get_cursor(self) -> int | None:
        ...

    async def set_cursor(self, ledger: int) -> None:
        ...


class StreamSnapshotStore(Protocol):
    """Optional local persistence of the stream cache."""

    async def save_stream(self, record: StreamRecord) -> None:
        ...

    async def load_streams(self) -> list[StreamRecord]:
        ...
