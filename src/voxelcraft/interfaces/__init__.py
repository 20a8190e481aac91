"""Protocol interfaces for all voxelcraft components."""

from voxelcraft.interfaces.artifact_store import ArtifactStore, ProgressSink
from voxelcraft.interfaces.backend import BackendClient
from voxelcraft.interfaces.ledger import LedgerGateway, LedgerReader
from voxelcraft.interfaces.signer import ChangeCallback, SigningAgent
from voxelcraft.interfaces.sync import LogSource, SyncStore

__all__ = [
    "ArtifactStore", "ProgressSink",
    "BackendClient",
    "LedgerGateway", "LedgerReader",
    "ChangeCallback", "SigningAgent",
    "LogSource", "SyncStore",
]
