"""Saga models: operation specs, in-memory saga records, typed outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from voxelcraft.models.errors import OperationError


class OperationKind(str, Enum):
    MINT_COLLECTIBLE = "mint_collectible"
    LIST_ON_MARKET = "list_on_market"
    BUY_FROM_MARKET = "buy_from_market"
    TRANSFER_FUNGIBLE = "transfer_fungible"
    CLAIM_REWARD = "claim_reward"
    CAST_VOTE = "cast_vote"
    SAVE_WORLD_SNAPSHOT = "save_world_snapshot"
    LOAD_WORLD_SNAPSHOT = "load_world_snapshot"
    BATCH = "batch"


class StepStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Operation specs (caller input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MintCollectible:
    category: str  # item | building | vehicle | land
    image: bytes
    metadata: dict
    image_name: str = "image"


@dataclass(frozen=True)
class ListOnMarket:
    category: str
    item_id: int
    price: str  # decimal token units
    duration: int | None = None  # seconds


@dataclass(frozen=True)
class BuyFromMarket:
    listing_id: int


@dataclass(frozen=True)
class TransferFungible:
    asset: str  # VXC | PTX
    to: str
    amount: str  # decimal token units


@dataclass(frozen=True)
class ClaimReward:
    reward_id: int


@dataclass(frozen=True)
class CastVote:
    proposal_id: int
    support: bool


@dataclass(frozen=True)
class SaveWorldSnapshot:
    world_id: str
    snapshot: Any  # JSON-serializable world document


@dataclass(frozen=True)
class LoadWorldSnapshot:
    world_id: str


@dataclass(frozen=True)
class BatchOfOperations:
    operations: tuple["OperationSpec", ...]


OperationSpec = Union[
    MintCollectible,
    ListOnMarket,
    BuyFromMarket,
    TransferFungible,
    ClaimReward,
    CastVote,
    SaveWorldSnapshot,
    LoadWorldSnapshot,
    BatchOfOperations,
]


# ---------------------------------------------------------------------------
# Saga record (in memory only)
# ---------------------------------------------------------------------------


@dataclass
class StepRecord:
    name: str
    status: StepStatus = StepStatus.PENDING
    best_effort: bool = False  # failure does not fail the saga
    error: OperationError | None = None
    duration_ms: int = 0


@dataclass
class SagaRecord:
    id: str
    kind: OperationKind
    steps: list[StepRecord] = field(default_factory=list)
    tx_hash: str | None = None
    outcome: str = "running"  # running | succeeded | failed
    error: OperationError | None = None
    failed_step: str | None = None

    def step(self, name: str) -> StepRecord:
        for s in self.steps:
            if s.name == name:
                return s
        raise KeyError(name)

    def executed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.status != StepStatus.PENDING]


# ---------------------------------------------------------------------------
# Success payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MintReceipt:
    reserved_id: int
    contract_address: str
    tx_hash: str
    metadata_url: str
    artifact_hash: str  # metadata document hash
    image_hash: str


@dataclass(frozen=True)
class ListingReceipt:
    listing_id: int
    tx_hash: str
    item_id: int
    price: str


@dataclass(frozen=True)
class PurchaseReceipt:
    listing_id: int
    tx_hash: str
    nft_contract: str
    item_id: int
    buyer: str


@dataclass(frozen=True)
class TransferReceipt:
    transfer_id: str
    tx_hash: str
    asset: str
    to: str
    amount: str


@dataclass(frozen=True)
class ClaimReceipt:
    reward_id: int
    tx_hash: str
    amount: str | None
    reward_type: str | None


@dataclass(frozen=True)
class VoteReceipt:
    proposal_id: int
    tx_hash: str
    support: bool


@dataclass(frozen=True)
class WorldSaveReceipt:
    world_id: str
    content_hash: str
    content_url: str
    backend_id: str | None
    pinned: bool


@dataclass(frozen=True)
class WorldLoadReceipt:
    world_id: str
    snapshot: Any
    record: dict
    loaded_from_store: bool


@dataclass(frozen=True)
class BatchFailure:
    """Enough context to retry one batch item on its own."""

    index: int
    spec: OperationSpec
    failed_step: str | None
    error: OperationError


@dataclass
class BatchReport:
    results: list["SagaResult"] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    def successes(self) -> list["SagaResult"]:
        return [r for r in self.results if r.success]


Receipt = Union[
    MintReceipt,
    ListingReceipt,
    PurchaseReceipt,
    TransferReceipt,
    ClaimReceipt,
    VoteReceipt,
    WorldSaveReceipt,
    WorldLoadReceipt,
    BatchReport,
]


@dataclass
class SagaResult:
    """Single outcome of an orchestrated operation.

    Exactly one of ``data`` (on success) and ``error`` (on failure) is set,
    except for batches, which always carry their ``BatchReport``.
    """

    kind: OperationKind
    success: bool
    saga: SagaRecord
    data: Receipt | None = None
    error: OperationError | None = None

    @property
    def failed_step(self) -> str | None:
        return self.saga.failed_step

    @property
    def tx_hash(self) -> str | None:
        return self.saga.tx_hash
