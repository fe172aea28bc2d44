"""Service runtime - wires cache, synchronizer, indexer and API together."""

from __future__ import annotations

import asyncio
import logging
import signal

from stellar_sdk import Keypair

from stellar_stream.api.streams import StreamAPI
from stellar_stream.errors import ConfigurationError
from stellar_stream.indexer.indexer import EventIndexer
from stellar_stream.interfaces.clock import Clock
from stellar_stream.interfaces.ledger import LedgerClient
from stellar_stream.models.config import ServiceConfig
from stellar_stream.policy.validation import StreamInputValidator
from stellar_stream.stellar.client import SorobanLedgerClient
from stellar_stream.storage.sqlite import SQLiteEventLog
from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.clock import SystemClock
from stellar_stream.streams.synchronizer import StreamSynchronizer

log = logging.getLogger(__name__)

NETWORK_PASSPHRASES = {
    "testnet": "Test SDF Network ; September 2015",
    "mainnet": "Public Global Stellar Network ; September 2015",
}


class StreamService:
    """Stream lifecycle service.

    On start: restore the cache snapshot, connect to Soroban, run one full
    reconciliation, start the event indexer, then reconcile periodically
    until stopped. Missing ledger settings disable the ledger-backed
    subsystems; the cache and history stay readable.
    """

    def __init__(self, cfg: ServiceConfig, clock: Clock | None = None) -> None:
        self._cfg = cfg
        self._running = False
        self._stop_event = asyncio.Event()

        self.clock = clock or SystemClock()
        self.keypair = Keypair.from_secret(cfg.signing_secret) if cfg.signing_secret else None

        # Core components
        self.store = SQLiteEventLog(cfg.db_path)
        self.cache = StreamCache()
        self.ledger: LedgerClient | None = None
        self.synchronizer = StreamSynchronizer(
            cache=self.cache,
            clock=self.clock,
            token_contracts=cfg.token_contracts,
            confirmation=cfg.confirmation,
            snapshot_store=self.store,
        )
        self.indexer: EventIndexer | None = None
        self.api = StreamAPI(
            cache=self.cache,
            synchronizer=self.synchronizer,
            validator=StreamInputValidator(cfg.allowed_assets),
            clock=self.clock,
            event_log=self.store,
        )

    @property
    def passphrase(self) -> str:
        return self._cfg.network_passphrase or NETWORK_PASSPHRASES.get(self._cfg.network, "")

    # ── Bootstrap ──────────────────────────────────────────

    def init_soroban(self, ledger: LedgerClient | None = None) -> bool:
        """Connect the synchronizer to the ledger.

        Raises ConfigurationError when no RPC URL is configured. Returns
        False (with a warning) when no contract id is configured.
        """
        if not self._cfg.rpc_url:
            raise ConfigurationError("Soroban RPC URL is not configured")
        if not self._cfg.contract_id:
            log.warning("No contract ID configured, on-chain sync disabled")
            return False

        self.ledger = ledger or SorobanLedgerClient(
            rpc_url=self._cfg.rpc_url,
            contract_id=self._cfg.contract_id,
            network_passphrase=self.passphrase,
            base_fee=self._cfg.base_fee,
            tx_timeout=self._cfg.tx_timeout,
            page_limit=self._cfg.indexer.page_limit,
            read_account=self.keypair.public_key if self.keypair else None,
        )
        if self.keypair is None:
            log.warning("No signing secret configured, stream creation disabled")
        self.synchronizer.attach_ledger(self.ledger, self.keypair)
        log.info("Soroban connected: %s (contract %s)", self._cfg.rpc_url, self._cfg.contract_id)
        return True

    async def init_indexer(self) -> bool:
        """Build the event indexer and restore its cursor."""
        if self.ledger is None:
            log.warning("Ledger not configured, event indexer disabled")
            return False
        if not self._cfg.indexer.enabled:
            log.info("Event indexer disabled by configuration")
            return False

        self.indexer = EventIndexer(
            ledger=self.ledger,
            event_log=self.store,
            contract_id=self._cfg.contract_id,
            backfill_ledgers=self._cfg.indexer.backfill_ledgers,
        )
        await self.indexer.restore_cursor()
        self.api.attach_indexer(self.indexer)
        return True

    def start_indexer(self, interval: float | None = None) -> None:
        if self.indexer is None:
            return
        self.indexer.start(interval if interval is not None else self._cfg.indexer.interval)

    async def initialize(self) -> None:
        """Open storage, restore the cache and bring up ledger subsystems."""
        await self.store.initialize()
        self.cache.init(await self.store.load_streams())

        try:
            self.init_soroban()
        except ConfigurationError as exc:
            log.error("Soroban disabled: %s", exc)

        await self.synchronizer.sync_streams()
        await self.init_indexer()

    # ── Run loop ───────────────────────────────────────────

    async def start(self) -> None:
        """Initialize components and run the reconciliation loop."""
        log.info("Starting stellar_stream service")
        log.info("  Network: %s", self._cfg.network)
        log.info("  RPC: %s", self._cfg.rpc_url)
        log.info("  Contract: %s", self._cfg.contract_id or "(not set)")
        log.info("  DB: %s", self._cfg.db_path)

        try:
            await self.initialize()
            self.start_indexer()
            self._running = True
            await self._sync_loop()
        finally:
            await self.shutdown()

    async def stop(self) -> None:
        """Signal the service to stop gracefully."""
        log.info("Stop requested")
        self._running = False
        self._stop_event.set()

    async def shutdown(self) -> None:
        if self.indexer:
            await self.indexer.stop()
        if isinstance(self.ledger, SorobanLedgerClient):
            await self.ledger.close()
        await self.store.close()
        log.info("Service shut down cleanly")

    async def _sync_loop(self) -> None:
        """Periodic reconciliation until stopped."""
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._cfg.sync_interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.synchronizer.sync_streams()
            except asyncio.CancelledError:
                log.info("Sync loop cancelled")
                break
            except Exception as exc:
                log.error("Sync loop error: %s", exc, exc_info=True)


async def run_service(cfg: ServiceConfig) -> None:
    """Entry point for running the service."""
    service = StreamService(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(service.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await service.start()
