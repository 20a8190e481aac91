"""Configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

COLLECTIBLE_CATEGORIES = ("item", "building", "vehicle", "land")
DEFAULT_ASSETS = ("VXC", "PTX")


class StoreProvider(str, Enum):
    """Content-addressed store backend."""

    KUBO = "kubo"  # locally-run node HTTP RPC
    PINATA = "pinata"  # managed pinning service


@dataclass
class ContractSet:
    """Contract addresses of one network."""

    tokens: dict[str, str] = field(default_factory=dict)  # asset symbol -> contract
    collectibles: dict[str, str] = field(default_factory=dict)  # category -> contract
    marketplace: str = ""
    reward_vault: str = ""
    dao: str = ""

    def token(self, asset: str) -> str:
        return self.tokens.get(asset.upper(), "")

    def collectible(self, category: str) -> str:
        return self.collectibles.get(category.lower(), "")


@dataclass
class NetworkConfig:
    """One ledger network (RPC endpoint + contract address set)."""

    name: str
    rpc_url: str
    network_passphrase: str
    explorer_url: str = ""
    contracts: ContractSet = field(default_factory=ContractSet)


def _default_networks() -> dict[str, NetworkConfig]:
    return {
        "testnet": NetworkConfig(
            name="testnet",
            rpc_url="https://soroban-testnet.stellar.org",
            network_passphrase="Test SDF Network ; September 2015",
            explorer_url="https://stellar.expert/explorer/testnet",
        ),
        "mainnet": NetworkConfig(
            name="mainnet",
            rpc_url="https://soroban-rpc.mainnet.stellar.gateway.fm",
            network_passphrase="Public Global Stellar Network ; September 2015",
            explorer_url="https://stellar.expert/explorer/public",
        ),
    }


@dataclass
class BackendConfig:
    base_url: str = "http://localhost:5000/api"
    timeout: float = 30.0  # seconds
    auth_token: str = ""


@dataclass
class StoreConfig:
    provider: StoreProvider = StoreProvider.KUBO
    kubo_rpc_url: str = "http://127.0.0.1:5001"
    gateway_url: str = "https://ipfs.io"
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_api_key: str = ""
    pinata_secret_key: str = ""
    timeout: float = 60.0  # seconds, uploads and fetches


@dataclass
class SyncConfig:
    poll_interval: int = 5  # seconds
    error_backoff: int = 30  # seconds
    start_ledger: int | None = None
    db_path: str = "~/.voxelcraft/sync.db"


@dataclass
class AppConfig:
    """Complete application configuration."""

    network: str = "testnet"
    log_level: str = "info"
    call_timeout: float = 30.0  # ledger reads, seconds
    assets: tuple[str, ...] = DEFAULT_ASSETS
    keypair_secret: str = ""  # loaded from env var VOXELCRAFT_SECRET

    networks: dict[str, NetworkConfig] = field(default_factory=_default_networks)
    backend: BackendConfig = field(default_factory=BackendConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    def active_network(self) -> NetworkConfig:
        try:
            return self.networks[self.network]
        except KeyError:
            raise ValueError(f"unknown network {self.network!r}") from None
