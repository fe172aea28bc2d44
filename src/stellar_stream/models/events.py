"""Contract event models decoded from the Soroban event stream, and history rows."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class StreamEventType(str, Enum):
    """Kinds of rows kept in the stream history log."""

    CREATED = "created"
    CLAIMED = "claimed"
    CANCELED = "canceled"
    START_TIME_UPDATED = "start_time_updated"


@dataclass(frozen=True)
class RawEvent:
    """A contract event as delivered by the RPC node, payload still XDR."""

    id: str  # ledger event id, "{toid}-{index}"
    ledger: int
    ledger_closed_at: int  # unix seconds
    contract_id: str
    topic: list[str]  # base64 SCVal
    value: str  # base64 SCVal
    in_successful_contract_call: bool = True


# ── Decoded contract events ────────────────────────────────────
# Topics emitted by the contract: ("Stream", "<SubType>")


@dataclass(frozen=True)
class StreamCreated:
    """Emitted by create_stream() (Stream/Created topic)."""

    stream_id: int
    sender: str
    recipient: str
    token: str
    total_amount: Decimal
    start_time: int
    end_time: int


@dataclass(frozen=True)
class StreamClaimed:
    """Emitted when the recipient withdraws vested funds (Stream/Claimed topic)."""

    stream_id: int
    recipient: str
    amount: Decimal


@dataclass(frozen=True)
class StreamCanceled:
    """Emitted when the sender cancels (Stream/Canceled topic)."""

    stream_id: int
    sender: str


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Any contract event whose sub-type we do not index."""

    category: str
    sub_type: str


LedgerEvent = Union[StreamCreated, StreamClaimed, StreamCanceled, UnrecognizedEvent]


@dataclass
class StreamEvent:
    """A row of the append-only stream history log."""

    stream_id: str
    event_type: StreamEventType
    timestamp: int  # unix seconds, ledger close time
    actor: str | None = None
    amount: Decimal | None = None
    metadata: dict[str, Any] | None = None
    ledger_event_id: str | None = None
    id: int | None = None  # assigned by the log on insert
