"""Data models for the voxelcraft orchestration core."""

from voxelcraft.models.errors import ErrorKind, OperationError
from voxelcraft.models.events import ContractFamily, EventType, NormalizedEvent, RawLog
from voxelcraft.models.records import (
    ActivityRecord,
    ArtifactBundle,
    BalanceSnapshot,
    ContentArtifact,
    SessionInfo,
    SyncStatus,
    TxResult,
)
from voxelcraft.models.config import (
    AppConfig,
    BackendConfig,
    ContractSet,
    NetworkConfig,
    StoreConfig,
    StoreProvider,
    SyncConfig,
)
from voxelcraft.models.operations import (
    BatchFailure,
    BatchOfOperations,
    BatchReport,
    BuyFromMarket,
    CastVote,
    ClaimReward,
    ListOnMarket,
    LoadWorldSnapshot,
    MintCollectible,
    OperationKind,
    OperationSpec,
    SagaRecord,
    SagaResult,
    SaveWorldSnapshot,
    StepRecord,
    StepStatus,
    TransferFungible,
)

__all__ = [
    "ErrorKind", "OperationError",
    "ContractFamily", "EventType", "NormalizedEvent", "RawLog",
    "ActivityRecord", "ArtifactBundle", "BalanceSnapshot", "ContentArtifact",
    "SessionInfo", "SyncStatus", "TxResult",
    "AppConfig", "BackendConfig", "ContractSet", "NetworkConfig",
    "StoreConfig", "StoreProvider", "SyncConfig",
    "BatchFailure", "BatchOfOperations", "BatchReport", "BuyFromMarket",
    "CastVote", "ClaimReward", "ListOnMarket", "LoadWorldSnapshot",
    "MintCollectible", "OperationKind", "OperationSpec", "SagaRecord",
    "SagaResult", "SaveWorldSnapshot", "StepRecord", "StepStatus",
    "TransferFungible",
]
