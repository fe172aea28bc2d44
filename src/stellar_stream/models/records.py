"""Stream records, progress snapshots and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class StreamStatus(str, Enum):
    """Derived lifecycle state of a stream. Never stored, always recomputed."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class StreamRecord:
    """One streaming agreement as held in the local cache."""

    id: str
    sender: str  # Stellar address
    recipient: str  # Stellar address
    asset_code: str  # upper-case
    total_amount: Decimal
    duration_seconds: int
    start_at: int  # unix seconds
    created_at: int  # local cache insertion time
    canceled_at: int | None = None
    completed_at: int | None = None  # set by reconciliation only
    local_start_at: int | None = None  # start time moved locally; wins over the ledger's

    @property
    def end_at(self) -> int:
        return self.start_at + self.duration_seconds


@dataclass(frozen=True)
class StreamInput:
    """Validated input for creating a stream."""

    sender: str
    recipient: str
    asset_code: str
    total_amount: Decimal
    duration_seconds: int
    start_at: int | None = None


@dataclass(frozen=True)
class StreamProgress:
    """Vesting figures for a stream at a point in time."""

    status: StreamStatus
    rate_per_second: Decimal
    elapsed_seconds: int
    vested_amount: Decimal
    remaining_amount: Decimal
    percent_complete: Decimal


@dataclass(frozen=True)
class OnChainStream:
    """Stream struct as returned by the contract's get_stream()."""

    stream_id: int
    sender: str
    recipient: str
    token: str  # token contract address
    total_amount: int  # base units
    claimed_amount: int  # base units
    start_time: int
    end_time: int
    canceled: bool


@dataclass(frozen=True)
class CreateStreamParams:
    """Arguments for the contract's create_stream() invocation."""

    sender: str
    recipient: str
    token: str
    total_amount: int  # base units
    start_time: int
    end_time: int


@dataclass
class SubmitResult:
    """Outcome of handing a signed transaction to the RPC node."""

    tx_hash: str
    status: str  # PENDING, DUPLICATE, TRY_AGAIN_LATER, ERROR
    error: str | None = None


@dataclass
class TransactionStatus:
    """Result of a single get_transaction() poll."""

    status: str  # SUCCESS, FAILED, NOT_FOUND
    return_value_xdr: str | None = None  # base64 SCVal
    error: str | None = None


@dataclass
class SyncReport:
    """Summary of one reconciliation pass."""

    total: int = 0
    synced: int = 0
    failed: int = 0
    skipped: bool = False
    failed_ids: list[int] = field(default_factory=list)
