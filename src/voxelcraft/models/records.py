"""Record types returned by the store, ledger and wallet components."""

from __future__ import annotations

from dataclasses import dataclass, field

from voxelcraft.models.errors import OperationError


@dataclass(frozen=True)
class ContentArtifact:
    """An uploaded payload in the content-addressed store.

    ``hash``, ``url`` and ``size`` are fixed once produced; ``pinned`` only
    reflects what the store reported at upload time.
    """

    hash: str
    url: str
    size: int
    pinned: bool = False


@dataclass(frozen=True)
class ArtifactBundle:
    """Image + metadata upload produced for a collectible mint."""

    image: ContentArtifact
    metadata: ContentArtifact
    metadata_document: dict

    @property
    def metadata_url(self) -> str:
        return self.metadata.url

    @property
    def image_hash(self) -> str:
        return self.image.hash

    @property
    def metadata_hash(self) -> str:
        return self.metadata.hash


@dataclass
class TxResult:
    """Result of a state-changing ledger call."""

    success: bool
    tx_hash: str | None = None
    error: OperationError | None = None
    return_value: object | None = None  # decoded contract return, if any


@dataclass
class BalanceSnapshot:
    """Fungible balances of one address, in base units (7 decimals)."""

    address: str
    balances: dict[str, int] = field(default_factory=dict)
    native: int | None = None  # XLM in stroops, None when unavailable


@dataclass
class SessionInfo:
    """What ``WalletSession.connect()`` hands back to the caller."""

    address: str
    network_id: str
    balances: BalanceSnapshot
    connected: bool = True


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    message: str
    tx_hash: str | None
    network: str | None
    created_at: str


@dataclass
class SyncStatus:
    """Reachability of the three systems the orchestrator coordinates."""

    ledger: bool
    store: bool
    backend: bool
    wallet_connected: bool
    last_sync: str | None = None
