"""Soroban RPC implementation of the LedgerClient protocol."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from stellar_sdk import Account, Keypair, SorobanServerAsync, TransactionBuilder, scval, xdr
from stellar_sdk.exceptions import (
    AccountNotFoundException,
    BaseRequestError,
    PrepareTransactionException,
    SorobanRpcErrorResponse,
)
from stellar_sdk.soroban_rpc import EventFilter, EventFilterType, EventInfo

from stellar_stream.errors import (
    ConfigurationError,
    DecodeError,
    LedgerError,
    LedgerRejected,
    LedgerUnavailable,
)
from stellar_stream.models.events import RawEvent
from stellar_stream.models.records import (
    CreateStreamParams,
    OnChainStream,
    SubmitResult,
    TransactionStatus,
)
from stellar_stream.stellar.decode import decode_stream, decode_u64

log = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (BaseRequestError, SorobanRpcErrorResponse, OSError)


def _status_str(status: object) -> str:
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


def _close_time(value: object) -> int:
    """Ledger close time as unix seconds (RPC gives a datetime or ISO string)."""
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (int, float)):
        return int(value)
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())


def _to_raw_event(info: EventInfo) -> RawEvent:
    return RawEvent(
        id=info.id,
        ledger=info.ledger,
        ledger_closed_at=_close_time(info.ledger_close_at),
        contract_id=info.contract_id or "",
        topic=list(info.topic),
        value=info.value,
        in_successful_contract_call=info.in_successful_contract_call,
    )


def _return_value_from_meta(meta_xdr: str | None) -> str | None:
    """Pull the Soroban return value out of a TransactionMeta (v3 or v4)."""
    if not meta_xdr:
        return None
    meta = xdr.TransactionMeta.from_xdr(meta_xdr)
    for version in ("v4", "v3"):
        body = getattr(meta, version, None)
        soroban_meta = getattr(body, "soroban_meta", None) if body else None
        if soroban_meta is not None and soroban_meta.return_value is not None:
            return soroban_meta.return_value.to_xdr()
    return None


class SorobanLedgerClient:
    """Talks to the stellar-stream contract through a Soroban RPC node.

    Read-only calls are simulated with a throwaway source account so no
    signing key is needed for reconciliation or indexing.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_id: str,
        network_passphrase: str,
        base_fee: int = 100,
        tx_timeout: int = 30,
        page_limit: int = 100,
        read_account: str | None = None,
    ) -> None:
        self._server = SorobanServerAsync(rpc_url)
        self._contract_id = contract_id
        self._passphrase = network_passphrase
        self._base_fee = base_fee
        self._tx_timeout = tx_timeout
        self._page_limit = page_limit
        self._read_account = read_account or Keypair.random().public_key

    @property
    def contract_id(self) -> str:
        return self._contract_id

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        await self._server.close()

    # ── Read-only simulation ───────────────────────────────

    async def _simulate(self, function_name: str, parameters: list[xdr.SCVal]) -> xdr.SCVal:
        tx = (
            TransactionBuilder(Account(self._read_account, 0), self._passphrase, self._base_fee)
            .append_invoke_contract_function_op(
                contract_id=self._contract_id,
                function_name=function_name,
                parameters=parameters,
            )
            .set_timeout(self._tx_timeout)
            .build()
        )
        try:
            sim = await self._server.simulate_transaction(tx)
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"{function_name} simulation failed: {exc}") from exc

        if sim.error:
            raise LedgerError(f"{function_name} simulation error: {sim.error}")
        if not sim.results:
            raise DecodeError(f"{function_name} simulation returned no result")
        try:
            return xdr.SCVal.from_xdr(sim.results[0].xdr)
        except Exception as exc:
            raise DecodeError(f"{function_name} returned malformed XDR: {exc}") from exc

    async def get_stream_count(self) -> int:
        value = await self._simulate("get_next_stream_id", [])
        return decode_u64(value)

    async def simulate_get_stream(self, index: int) -> OnChainStream:
        value = await self._simulate("get_stream", [scval.to_uint64(index)])
        return decode_stream(index, value)

    # ── Events ─────────────────────────────────────────────

    async def get_latest_ledger_sequence(self) -> int:
        try:
            latest = await self._server.get_latest_ledger()
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"get_latest_ledger failed: {exc}") from exc
        return latest.sequence

    async def get_events(
        self, from_exclusive: int, to_inclusive: int, contract_id: str
    ) -> list[RawEvent]:
        """Fetch every event in (from_exclusive, to_inclusive], following pagination."""
        filters = [
            EventFilter(
                event_type=EventFilterType.CONTRACT,
                contract_ids=[contract_id],
            )
        ]
        events: list[RawEvent] = []
        cursor: str | None = None

        while True:
            try:
                if cursor:
                    response = await self._server.get_events(
                        filters=filters, cursor=cursor, limit=self._page_limit,
                    )
                else:
                    response = await self._server.get_events(
                        start_ledger=from_exclusive + 1,
                        filters=filters,
                        limit=self._page_limit,
                    )
            except _TRANSPORT_ERRORS as exc:
                raise LedgerUnavailable(f"get_events failed: {exc}") from exc

            page = response.events or []
            for info in page:
                if info.ledger > to_inclusive:
                    return events
                if info.ledger > from_exclusive:
                    events.append(_to_raw_event(info))

            if len(page) < self._page_limit:
                return events
            cursor = response.cursor or page[-1].id
            log.debug("get_events: next page after %s (%d so far)", cursor, len(events))

    # ── Submission ─────────────────────────────────────────

    async def build_and_submit(
        self, params: CreateStreamParams, keypair: Keypair
    ) -> SubmitResult:
        try:
            source = await self._server.load_account(keypair.public_key)
        except AccountNotFoundException as exc:
            raise ConfigurationError(
                f"signing account {keypair.public_key} does not exist on the ledger"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"load_account failed: {exc}") from exc

        tx = (
            TransactionBuilder(source, self._passphrase, self._base_fee)
            .append_invoke_contract_function_op(
                contract_id=self._contract_id,
                function_name="create_stream",
                parameters=[
                    scval.to_address(params.sender),
                    scval.to_address(params.recipient),
                    scval.to_address(params.token),
                    scval.to_int128(params.total_amount),
                    scval.to_uint64(params.start_time),
                    scval.to_uint64(params.end_time),
                ],
            )
            .set_timeout(self._tx_timeout)
            .build()
        )

        try:
            tx = await self._server.prepare_transaction(tx)
        except PrepareTransactionException as exc:
            raise LedgerRejected(f"simulation_failed: {exc}") from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"prepare_transaction failed: {exc}") from exc

        tx.sign(keypair)
        tx_hash = tx.hash_hex()

        try:
            response = await self._server.send_transaction(tx)
        except _TRANSPORT_ERRORS as exc:
            # The node may have accepted it before the connection dropped.
            log.warning("send_transaction for %s failed in transit: %s", tx_hash[:16], exc)
            return SubmitResult(tx_hash=tx_hash, status="UNKNOWN", error=str(exc))

        status = _status_str(response.status)
        log.info("create_stream submitted (tx=%s, status=%s)", response.hash[:16], status)
        return SubmitResult(
            tx_hash=response.hash,
            status=status,
            error=response.error_result_xdr,
        )

    async def get_transaction_status(self, tx_hash: str) -> TransactionStatus:
        try:
            response = await self._server.get_transaction(tx_hash)
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"get_transaction failed: {exc}") from exc

        status = _status_str(response.status)
        if status != "SUCCESS":
            return TransactionStatus(status=status, error=response.result_xdr)
        return TransactionStatus(
            status=status,
            return_value_xdr=_return_value_from_meta(response.result_meta_xdr),
        )
