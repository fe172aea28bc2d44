"""Configuration models for the stream service."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ConfirmationConfig:
    """Bounded confirmation polling after a transaction submission."""

    attempts: int = 10
    interval: float = 1.0  # seconds between get_transaction() polls


@dataclass
class IndexerConfig:
    """Event indexer configuration."""

    enabled: bool = True
    interval: float = 10.0  # seconds between ticks
    backfill_ledgers: int = 100  # how far back the first tick looks
    page_limit: int = 100  # events per get_events() page


@dataclass
class ServiceConfig:
    """Complete service configuration."""

    # Service
    sync_interval: int = 60  # seconds between reconciliation passes
    log_level: str = "info"

    # Stellar
    network: str = "testnet"
    rpc_url: str = "https://soroban-testnet.stellar.org"
    network_passphrase: str = "Test SDF Network ; September 2015"
    contract_id: str = ""  # stellar-stream contract ID
    signing_secret: str = ""  # loaded from env var STELLAR_STREAM_SECRET
    base_fee: int = 100  # stroops
    tx_timeout: int = 30  # seconds

    # Assets
    allowed_assets: list[str] = field(default_factory=lambda: ["USDC", "XLM"])
    token_contracts: dict[str, str] = field(default_factory=dict)  # asset code -> token contract

    # Storage
    db_path: str = "~/.stellar_stream/streams.db"

    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    indexer: IndexerConfig = field(default_factory=IndexerConfig)

