"""Configuration loading: TOML file + environment variables + deployments.json."""

from __future__ import annotations

import json
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from voxelcraft.models.config import (
    AppConfig,
    ContractSet,
    NetworkConfig,
    StoreProvider,
)


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "VOXELCRAFT_",
) -> AppConfig:
    """Load application configuration from TOML file, env vars, and deployments.json.

    Priority (highest wins):
        1. Environment variables (VOXELCRAFT_SECRET, etc.)
        2. TOML config file ([networks.<name>.contracts] beats deployments.json)
        3. Defaults from AppConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = AppConfig()

    # ── App section ────────────────────────────────────────
    app = raw.get("app", {})
    if v := app.get("network"):
        cfg.network = str(v)
    if v := app.get("log_level"):
        cfg.log_level = str(v)
    if v := app.get("call_timeout"):
        cfg.call_timeout = float(v)
    if v := app.get("assets"):
        cfg.assets = tuple(str(a).upper() for a in v)

    # ── Contract addresses from deployments.json ───────────
    deployments_path = app.get("deployments_path", "deployments.json")
    _load_deployments(cfg, deployments_path)

    # ── Networks section ───────────────────────────────────
    for name, net in raw.get("networks", {}).items():
        current = cfg.networks.get(name)
        if current is None:
            current = NetworkConfig(
                name=name,
                rpc_url=str(net.get("rpc_url", "")),
                network_passphrase=str(net.get("network_passphrase", "")),
            )
            cfg.networks[name] = current
        if v := net.get("rpc_url"):
            current.rpc_url = str(v)
        if v := net.get("network_passphrase"):
            current.network_passphrase = str(v)
        if v := net.get("explorer_url"):
            current.explorer_url = str(v)
        if contracts := net.get("contracts"):
            _merge_contracts(current.contracts, contracts)

    # ── Backend section ────────────────────────────────────
    backend = raw.get("backend", {})
    if v := backend.get("base_url"):
        cfg.backend.base_url = str(v)
    if v := backend.get("timeout"):
        cfg.backend.timeout = float(v)
    if v := backend.get("auth_token"):
        cfg.backend.auth_token = str(v)

    # ── Store section ──────────────────────────────────────
    store = raw.get("store", {})
    if v := store.get("provider"):
        cfg.store.provider = StoreProvider(v)
    if v := store.get("kubo_rpc_url"):
        cfg.store.kubo_rpc_url = str(v)
    if v := store.get("gateway_url"):
        cfg.store.gateway_url = str(v)
    if v := store.get("pinata_api_url"):
        cfg.store.pinata_api_url = str(v)
    if v := store.get("pinata_api_key"):
        cfg.store.pinata_api_key = str(v)
    if v := store.get("pinata_secret_key"):
        cfg.store.pinata_secret_key = str(v)
    if v := store.get("timeout"):
        cfg.store.timeout = float(v)

    # ── Sync section ───────────────────────────────────────
    sync = raw.get("sync", {})
    if v := sync.get("poll_interval"):
        cfg.sync.poll_interval = int(v)
    if v := sync.get("error_backoff"):
        cfg.sync.error_backoff = int(v)
    if v := sync.get("start_ledger"):
        cfg.sync.start_ledger = int(v)
    if v := sync.get("db_path"):
        cfg.sync.db_path = str(v)

    # ── Wallet section ─────────────────────────────────────
    wallet = raw.get("wallet", {})
    if v := wallet.get("keypair_secret"):
        cfg.keypair_secret = str(v)

    # ── Environment variable overrides (highest priority) ──
    if secret := os.environ.get(f"{env_prefix}SECRET"):
        cfg.keypair_secret = secret
    if net := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = net
    if url := os.environ.get(f"{env_prefix}BACKEND_URL"):
        cfg.backend.base_url = url
    if provider := os.environ.get(f"{env_prefix}STORE"):
        cfg.store.provider = StoreProvider(provider)
    if key := os.environ.get(f"{env_prefix}PINATA_API_KEY"):
        cfg.store.pinata_api_key = key
    if key := os.environ.get(f"{env_prefix}PINATA_SECRET_KEY"):
        cfg.store.pinata_secret_key = key
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        if cfg.network in cfg.networks:
            cfg.networks[cfg.network].rpc_url = rpc

    # Expand ~ in paths
    cfg.sync.db_path = str(Path(cfg.sync.db_path).expanduser())

    return cfg


def _merge_contracts(target: ContractSet, raw: dict) -> None:
    for asset, address in (raw.get("tokens") or {}).items():
        target.tokens[str(asset).upper()] = str(address)
    for category, address in (raw.get("collectibles") or {}).items():
        target.collectibles[str(category).lower()] = str(address)
    if v := raw.get("marketplace"):
        target.marketplace = str(v)
    if v := raw.get("reward_vault"):
        target.reward_vault = str(v)
    if v := raw.get("dao"):
        target.dao = str(v)


def _load_deployments(cfg: AppConfig, deployments_path: str) -> None:
    """Load contract addresses from deployments.json (one object per network)."""
    p = Path(deployments_path).expanduser()
    if not p.is_absolute():
        # Try relative to CWD
        p = Path.cwd() / p
    if not p.exists():
        return

    with open(p) as f:
        data = json.load(f)

    for name, contracts in data.items():
        network = cfg.networks.get(name)
        if network is not None and isinstance(contracts, dict):
            _merge_contracts(network.contracts, contracts)
