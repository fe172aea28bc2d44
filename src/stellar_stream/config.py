"""Configuration loading: TOML file + environment variables + deployments.json."""

from __future__ import annotations

import json
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from stellar_stream.models.config import ConfirmationConfig, IndexerConfig, ServiceConfig


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "STELLAR_STREAM_",
) -> ServiceConfig:
    """Load service configuration from TOML file, env vars, and deployments.json.

    Priority (highest wins):
        1. Environment variables (STELLAR_STREAM_SECRET, etc.)
        2. TOML config file
        3. Defaults from ServiceConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = ServiceConfig()

    # ── Service section ────────────────────────────────────
    service = raw.get("service", {})
    if v := service.get("sync_interval"):
        cfg.sync_interval = int(v)
    if v := service.get("log_level"):
        cfg.log_level = str(v)

    # ── Stellar section ────────────────────────────────────
    stellar = raw.get("stellar", {})
    if v := stellar.get("network"):
        cfg.network = str(v)
    if v := stellar.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := stellar.get("network_passphrase"):
        cfg.network_passphrase = str(v)
    if v := stellar.get("contract_id"):
        cfg.contract_id = str(v)
    if v := stellar.get("signing_secret"):
        cfg.signing_secret = str(v)
    if v := stellar.get("base_fee"):
        cfg.base_fee = int(v)
    if v := stellar.get("tx_timeout"):
        cfg.tx_timeout = int(v)

    # Load contract ID from deployments.json if not explicitly set
    deployments_path = stellar.get("deployments_path", "deployments.json")
    if not cfg.contract_id:
        _load_deployments(cfg, deployments_path)

    # ── Confirmation section ───────────────────────────────
    confirmation = raw.get("confirmation", {})
    cfg.confirmation = ConfirmationConfig(
        attempts=int(confirmation.get("attempts", 10)),
        interval=float(confirmation.get("interval", 1.0)),
    )

    # ── Indexer section ────────────────────────────────────
    indexer = raw.get("indexer", {})
    cfg.indexer = IndexerConfig(
        enabled=indexer.get("enabled", True),
        interval=float(indexer.get("interval", 10.0)),
        backfill_ledgers=int(indexer.get("backfill_ledgers", 100)),
        page_limit=int(indexer.get("page_limit", 100)),
    )

    # ── Assets section ─────────────────────────────────────
    assets = raw.get("assets", {})
    if v := assets.get("allowed"):
        cfg.allowed_assets = [str(a).strip().upper() for a in v]
    if v := assets.get("tokens"):
        cfg.token_contracts = {str(k).upper(): str(c) for k, c in v.items()}

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Environment variable overrides (highest priority) ──
    if secret := os.environ.get(f"{env_prefix}SECRET"):
        cfg.signing_secret = secret
    if net := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = net
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = rpc
    if cid := os.environ.get(f"{env_prefix}CONTRACT_ID"):
        cfg.contract_id = cid
    if db_path := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db_path
    if allowed := os.environ.get(f"{env_prefix}ALLOWED_ASSETS"):
        cfg.allowed_assets = [a.strip().upper() for a in allowed.split(",") if a.strip()]

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def _load_deployments(cfg: ServiceConfig, deployments_path: str) -> None:
    """Load the contract ID and token contracts from deployments.json."""
    p = Path(deployments_path).expanduser()
    if not p.is_absolute():
        # Try relative to CWD
        p = Path.cwd() / p
    if not p.exists():
        return

    with open(p) as f:
        data = json.load(f)

    stream_contract = data.get("stellar_stream", {})
    if cid := stream_contract.get("contract_id"):
        cfg.contract_id = cid

    for code, contract in data.get("tokens", {}).items():
        cfg.token_contracts.setdefault(code.upper(), contract)
