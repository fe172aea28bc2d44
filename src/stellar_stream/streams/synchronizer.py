"""Synchronizer - reconciles the stream cache with the ledger and drives creation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable

from stellar_sdk import Keypair

from stellar_stream.errors import (
    ConfigurationError,
    DecodeError,
    LedgerError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    ValidationError,
)
from stellar_stream.interfaces.clock import Clock
from stellar_stream.interfaces.event_log import StreamSnapshotStore
from stellar_stream.interfaces.ledger import LedgerClient
from stellar_stream.models.config import ConfirmationConfig
from stellar_stream.models.records import (
    CreateStreamParams,
    OnChainStream,
    StreamInput,
    StreamRecord,
    StreamStatus,
    SyncReport,
)
from stellar_stream.stellar.decode import decode_u64, to_amount, to_base_units
from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.progress import compute_status

log = logging.getLogger(__name__)

# Send statuses that mean the node never accepted the transaction
_SEND_REJECTED = {"ERROR", "TRY_AGAIN_LATER"}
_TX_FAILED = "FAILED"
_TX_SUCCESS = "SUCCESS"


class StreamSynchronizer:
    """Sole writer of the stream cache.

    Reconciliation pulls every stream from the contract and replaces the
    matching cache entries. Creation submits a create_stream() transaction
    signed with the service key and waits for it within a fixed polling
    budget. Cancellation is local to the cache.
    """

    def __init__(
        self,
        cache: StreamCache,
        clock: Clock,
        ledger: LedgerClient | None = None,
        keypair: Keypair | None = None,
        token_contracts: dict[str, str] | None = None,
        confirmation: ConfirmationConfig | None = None,
        snapshot_store: StreamSnapshotStore | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._clock = clock
        self._ledger = ledger
        self._keypair = keypair
        self._tokens = {k.upper(): v for k, v in (token_contracts or {}).items()}
        self._confirmation = confirmation or ConfirmationConfig()
        self._snapshot_store = snapshot_store
        self._sleep = sleep

    @property
    def cache(self) -> StreamCache:
        return self._cache

    @property
    def ledger_enabled(self) -> bool:
        return self._ledger is not None

    def attach_ledger(self, ledger: LedgerClient, keypair: Keypair | None = None) -> None:
        """Enable reconciliation (and creation, when a signing key is given)."""
        self._ledger = ledger
        self._keypair = keypair

    # ── Reconciliation ─────────────────────────────────────

    async def sync_streams(self) -> SyncReport:
        """Run one full reconciliation pass.

        A failing index is logged and skipped. If the stream count cannot be
        read the pass is skipped and the cache left untouched.
        """
        if self._ledger is None:
            log.debug("No ledger client configured, skipping stream sync")
            return SyncReport(skipped=True)

        try:
            count = await self._ledger.get_stream_count()
        except LedgerUnavailable as exc:
            log.warning("Ledger unavailable, skipping stream sync: %s", exc)
            return SyncReport(skipped=True)
        except (LedgerError, DecodeError) as exc:
            log.error("Could not read stream count, skipping stream sync: %s", exc)
            return SyncReport(skipped=True)

        report = SyncReport(total=count)
        fetched: list[OnChainStream] = []
        for index in range(1, count + 1):
            try:
                fetched.append(await self._ledger.simulate_get_stream(index))
            except (LedgerError, DecodeError) as exc:
                log.warning("Failed to sync stream %d: %s", index, exc)
                report.failed += 1
                report.failed_ids.append(index)

        async with self._cache.lock:
            now = self._clock.now()
            merged = [
                self._merge(chain, self._cache.get(str(chain.stream_id)), now)
                for chain in fetched
            ]
            changed = [m for m in merged if m != self._cache.get(m.id)]
            self._cache.put_many(merged)

        for record in changed:
            await self._persist(record)

        report.synced = len(merged)
        log.info(
            "Stream sync complete: %d on-chain, %d synced, %d failed, %d changed",
            report.total, report.synced, report.failed, len(changed),
        )
        return report

    def _merge(
        self, chain: OnChainStream, existing: StreamRecord | None, now: int
    ) -> StreamRecord:
        """Build the cache record for an on-chain stream.

        Local timestamps already recorded for the stream are kept, so an
        unchanged ledger produces an identical record. A start time moved
        locally wins over the contract's start_time.
        """
        created_at = existing.created_at if existing else now
        local_start_at = existing.local_start_at if existing else None

        canceled_at = existing.canceled_at if existing else None
        if chain.canceled and canceled_at is None:
            canceled_at = now

        completed_at = existing.completed_at if existing else None
        fully_claimed = chain.total_amount > 0 and chain.claimed_amount >= chain.total_amount
        if fully_claimed and completed_at is None and canceled_at is None:
            completed_at = now

        return StreamRecord(
            id=str(chain.stream_id),
            sender=chain.sender,
            recipient=chain.recipient,
            asset_code=self._asset_for_token(chain.token),
            total_amount=to_amount(chain.total_amount),
            duration_seconds=chain.end_time - chain.start_time,
            start_at=local_start_at if local_start_at is not None else chain.start_time,
            created_at=created_at,
            canceled_at=canceled_at,
            completed_at=completed_at,
            local_start_at=local_start_at,
        )

    def _asset_for_token(self, token: str) -> str:
        for code, contract in self._tokens.items():
            if contract == token:
                return code
        return token.upper()

    # ── Creation ───────────────────────────────────────────

    async def create_stream(self, stream_input: StreamInput) -> StreamRecord:
        """Create a stream on-chain and insert it into the cache.

        Raises:
            ConfigurationError: no ledger, signing key or token contract.
            LedgerRejected: the ledger refused the transaction (definite).
            LedgerTimeout: no final status within the polling budget
                (indeterminate; do not blindly resubmit).
        """
        if self._ledger is None or self._keypair is None:
            raise ConfigurationError(
                "stream creation requires a contract id, RPC URL and signing secret"
            )
        token = self._tokens.get(stream_input.asset_code.upper())
        if not token:
            raise ConfigurationError(
                f"no token contract configured for asset {stream_input.asset_code}"
            )

        start_at = stream_input.start_at or self._clock.now()
        end_at = start_at + stream_input.duration_seconds
        params = CreateStreamParams(
            sender=stream_input.sender,
            recipient=stream_input.recipient,
            token=token,
            total_amount=to_base_units(stream_input.total_amount),
            start_time=start_at,
            end_time=end_at,
        )

        log.info(
            "Submitting create_stream: %s -> %s, %s %s over %ds",
            params.sender[:8], params.recipient[:8], stream_input.total_amount,
            stream_input.asset_code, stream_input.duration_seconds,
        )
        submitted = await self._ledger.build_and_submit(params, self._keypair)
        if submitted.status in _SEND_REJECTED:
            raise LedgerRejected(submitted.error or f"send_transaction {submitted.status}", submitted.tx_hash)

        stream_id = await self._await_confirmation(submitted.tx_hash)

        record = StreamRecord(
            id=str(stream_id),
            sender=stream_input.sender,
            recipient=stream_input.recipient,
            asset_code=stream_input.asset_code.upper(),
            total_amount=stream_input.total_amount,
            duration_seconds=stream_input.duration_seconds,
            start_at=start_at,
            created_at=self._clock.now(),
        )
        async with self._cache.lock:
            self._cache.put(record)
        await self._persist(record)

        log.info("Stream %s created (tx=%s)", record.id, submitted.tx_hash[:16])
        return record

    async def _await_confirmation(self, tx_hash: str) -> int:
        """Poll the transaction until it resolves or the budget runs out."""
        attempts = self._confirmation.attempts
        for attempt in range(1, attempts + 1):
            await self._sleep(self._confirmation.interval)
            try:
                status = await self._ledger.get_transaction_status(tx_hash)  # type: ignore[union-attr]
            except LedgerUnavailable as exc:
                log.debug("Status check %d/%d for %s failed: %s", attempt, attempts, tx_hash[:16], exc)
                continue

            if status.status == _TX_SUCCESS:
                if not status.return_value_xdr:
                    raise DecodeError(f"transaction {tx_hash} succeeded without a return value")
                return decode_u64(status.return_value_xdr)
            if status.status == _TX_FAILED:
                log.error("create_stream tx failed (tx=%s)", tx_hash[:16])
                raise LedgerRejected(status.error or "transaction failed", tx_hash)
            log.debug("Transaction %s still %s (%d/%d)", tx_hash[:16], status.status, attempt, attempts)

        log.error("create_stream tx unresolved after %d checks (tx=%s)", attempts, tx_hash[:16])
        raise LedgerTimeout(tx_hash, attempts)

    # ── Local mutations ────────────────────────────────────

    async def cancel_stream(self, stream_id: str) -> StreamRecord | None:
        """Mark a stream canceled in the cache.

        Not propagated on-chain. Already-canceled streams come back unchanged.
        """
        async with self._cache.lock:
            existing = self._cache.get(stream_id)
            if existing is None:
                return None
            if existing.canceled_at is not None:
                return existing
            record = self._cache.update(
                stream_id, lambda s: replace(s, canceled_at=self._clock.now())
            )
        log.info("Stream %s canceled locally (not propagated to the ledger)", stream_id)
        await self._persist(record)  # type: ignore[arg-type]
        return record

    async def update_start_at(self, stream_id: str, start_at: int) -> StreamRecord | None:
        """Move a scheduled stream's start time into the future."""
        async with self._cache.lock:
            existing = self._cache.get(stream_id)
            if existing is None:
                return None
            now = self._clock.now()
            if start_at <= now:
                raise ValidationError([("startAt", "startAt must be in the future.")])
            if compute_status(existing, now) != StreamStatus.SCHEDULED:
                raise ValidationError([
                    ("startAt", "Only scheduled streams can have their start time changed."),
                ])
            record = self._cache.update(
                stream_id, lambda s: replace(s, start_at=start_at, local_start_at=start_at)
            )
        log.info("Stream %s start time moved to %d", stream_id, start_at)
        await self._persist(record)  # type: ignore[arg-type]
        return record

    async def _persist(self, record: StreamRecord) -> None:
        if self._snapshot_store is None:
            return
        try:
            await self._snapshot_store.save_stream(record)
        except Exception as exc:
            log.error("Failed to persist stream %s: %s", record.id, exc)
