"""Mock implementations of the ledger and clock seams."""

from __future__ import annotations

from stellar_sdk import Keypair, scval

from stellar_stream.errors import DecodeError, LedgerUnavailable
from stellar_stream.models.events import RawEvent
from stellar_stream.models.records import (
    CreateStreamParams,
    OnChainStream,
    SubmitResult,
    TransactionStatus,
)


class MockClock:
    """Implements Clock protocol. Time only moves when a test moves it."""

    def __init__(self, now: int = 1_000) -> None:
        self.current = now

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += seconds


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and optionally advances a clock."""

    def __init__(self, clock: MockClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self._clock is not None:
            self._clock.advance(int(delay))

    @property
    def total(self) -> float:
        return sum(self.calls)


class MockLedger:
    """Implements LedgerClient protocol over in-memory contract state."""

    def __init__(self) -> None:
        self.streams: dict[int, OnChainStream] = {}
        self.failing_indices: set[int] = set()
        self.unavailable = False
        self.count_error: Exception | None = None

        self.latest_ledger = 500
        self.events: list[RawEvent] = []
        self.events_error: Exception | None = None
        self.event_calls: list[tuple[int, int, str]] = []

        # Transaction lifecycle
        self.send_status = "PENDING"
        self.send_error: str | None = None
        self.tx_statuses: list[TransactionStatus | Exception] = []
        self.default_tx_status = TransactionStatus(status="NOT_FOUND")
        self.status_calls: list[str] = []
        self.submitted: list[CreateStreamParams] = []

    # ── Helpers ────────────────────────────────────────────

    def add_stream(self, stream: OnChainStream) -> None:
        self.streams[stream.stream_id] = stream

    def succeed_with(self, stream_id: int) -> None:
        """Queue a SUCCESS status whose return value is stream_id."""
        self.tx_statuses.append(TransactionStatus(
            status="SUCCESS",
            return_value_xdr=scval.to_uint64(stream_id).to_xdr(),
        ))

    # ── LedgerClient ───────────────────────────────────────

    async def get_stream_count(self) -> int:
        if self.unavailable:
            raise LedgerUnavailable("mock ledger offline")
        if self.count_error is not None:
            raise self.count_error
        return max(self.streams, default=0)

    async def simulate_get_stream(self, index: int) -> OnChainStream:
        if self.unavailable:
            raise LedgerUnavailable("mock ledger offline")
        if index in self.failing_indices or index not in self.streams:
            raise DecodeError(f"stream {index}: mock decode failure")
        return self.streams[index]

    async def get_latest_ledger_sequence(self) -> int:
        if self.unavailable:
            raise LedgerUnavailable("mock ledger offline")
        return self.latest_ledger

    async def get_events(
        self, from_exclusive: int, to_inclusive: int, contract_id: str
    ) -> list[RawEvent]:
        self.event_calls.append((from_exclusive, to_inclusive, contract_id))
        if self.events_error is not None:
            raise self.events_error
        return [
            e for e in self.events
            if from_exclusive < e.ledger <= to_inclusive
        ]

    async def build_and_submit(self, params: CreateStreamParams, keypair: Keypair) -> SubmitResult:
        if self.unavailable:
            raise LedgerUnavailable("mock ledger offline")
        self.submitted.append(params)
        return SubmitResult(
            tx_hash=f"{len(self.submitted):064x}",
            status=self.send_status,
            error=self.send_error,
        )

    async def get_transaction_status(self, tx_hash: str) -> TransactionStatus:
        self.status_calls.append(tx_hash)
        if self.tx_statuses:
            status = self.tx_statuses.pop(0)
            if isinstance(status, Exception):
                raise status
            return status
        return self.default_tx_status
