"""LedgerClient protocol - read, submit and event access to the stream contract."""

from __future__ import annotations

from typing import Protocol

from stellar_sdk import Keypair

from stellar_stream.models.events import RawEvent
from stellar_stream.models.records import (
    CreateStreamParams,
    OnChainStream,
    SubmitResult,
    TransactionStatus,
)


class LedgerClient(Protocol):
    """Capability to query and drive the stellar-stream Soroban contract.

    Implementations raise LedgerUnavailable when the node cannot be reached
    and DecodeError when a contract response is malformed.
    """

    async def get_stream_count(self) -> int:
        """Number of streams ever issued by the contract (ids are 1..count)."""
        ...

    async def simulate_get_stream(self, index: int) -> OnChainStream:
        """Read-only simulated get_stream(index) call."""
        ...

    async def get_latest_ledger_sequence(self) -> int:
        ...

    async def get_events(
        self, from_exclusive: int, to_inclusive: int, contract_id: str
    ) -> list[RawEvent]:
        """All contract events in the ledger window (from_exclusive, to_inclusive]."""
        ...

    async def build_and_submit(
        self, params: CreateStreamParams, keypair: Keypair
    ) -> SubmitResult:
        """Build, sign and send a create_stream() transaction. Does not wait."""
        ...

    async def get_transaction_status(self, tx_hash: str) -> TransactionStatus:
        ...
