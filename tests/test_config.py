"""Configuration loading: TOML, deployments.json and environment overrides."""

from __future__ import annotations

import json

import pytest

from voxelcraft.config import load_config
from voxelcraft.models.config import StoreProvider

from tests.factories import DAO, ITEM_NFT, MARKETPLACE, VXC


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("SECRET", "NETWORK", "BACKEND_URL", "STORE", "PINATA_API_KEY",
                 "PINATA_SECRET_KEY", "RPC_URL"):
        monkeypatch.delenv(f"VOXELCRAFT_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_file():
    cfg = load_config(None)
    assert cfg.network == "testnet"
    assert cfg.assets == ("VXC", "PTX")
    assert cfg.store.provider == StoreProvider.KUBO
    assert cfg.active_network().rpc_url == "https://soroban-testnet.stellar.org"
    assert not cfg.sync.db_path.startswith("~")


def test_toml_sections(tmp_path):
    path = tmp_path / "voxelcraft.toml"
    path.write_text(f"""
[app]
network = "testnet"
call_timeout = 12
assets = ["vxc"]

[backend]
base_url = "https://api.voxelcraft.test/api"
auth_token = "t0k"

[store]
provider = "pinata"
pinata_api_key = "k"
pinata_secret_key = "s"

[sync]
poll_interval = 9
start_ledger = 500
db_path = "{tmp_path / 'sync.db'}"

[networks.testnet.contracts]
marketplace = "{MARKETPLACE}"

[networks.testnet.contracts.tokens]
VXC = "{VXC}"

[networks.local]
rpc_url = "http://localhost:8000/soroban/rpc"
network_passphrase = "Standalone Network ; February 2017"
""")
    cfg = load_config(path)

    assert cfg.call_timeout == 12.0
    assert cfg.assets == ("VXC",)
    assert cfg.backend.base_url == "https://api.voxelcraft.test/api"
    assert cfg.backend.auth_token == "t0k"
    assert cfg.store.provider == StoreProvider.PINATA
    assert cfg.sync.poll_interval == 9
    assert cfg.sync.start_ledger == 500
    assert cfg.networks["testnet"].contracts.marketplace == MARKETPLACE
    assert cfg.networks["testnet"].contracts.token("vxc") == VXC
    assert cfg.networks["local"].network_passphrase == "Standalone Network ; February 2017"


def test_deployments_json_then_toml_wins(tmp_path):
    (tmp_path / "deployments.json").write_text(json.dumps({
        "testnet": {
            "collectibles": {"Item": ITEM_NFT},
            "dao": DAO,
            "marketplace": "CSHOULDBEREPLACED",
        },
        "unknown-net": {"dao": DAO},
    }))
    path = tmp_path / "voxelcraft.toml"
    path.write_text(f'[networks.testnet.contracts]\nmarketplace = "{MARKETPLACE}"\n')

    cfg = load_config(path)
    contracts = cfg.networks["testnet"].contracts

    assert contracts.collectible("item") == ITEM_NFT
    assert contracts.dao == DAO
    assert contracts.marketplace == MARKETPLACE
    assert "unknown-net" not in cfg.networks


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("VOXELCRAFT_SECRET", "SSECRET")
    monkeypatch.setenv("VOXELCRAFT_NETWORK", "mainnet")
    monkeypatch.setenv("VOXELCRAFT_BACKEND_URL", "http://override/api")
    monkeypatch.setenv("VOXELCRAFT_STORE", "pinata")
    monkeypatch.setenv("VOXELCRAFT_RPC_URL", "http://my-rpc")

    cfg = load_config(None)

    assert cfg.keypair_secret == "SSECRET"
    assert cfg.network == "mainnet"
    assert cfg.backend.base_url == "http://override/api"
    assert cfg.store.provider == StoreProvider.PINATA
    assert cfg.networks["mainnet"].rpc_url == "http://my-rpc"
    assert cfg.networks["testnet"].rpc_url == "https://soroban-testnet.stellar.org"


def test_unknown_network():
    cfg = load_config(None)
    cfg.network = "devnet"
    with pytest.raises(ValueError):
        cfg.active_network()
