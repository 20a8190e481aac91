"""Transaction orchestration: multi-step sagas across wallet, store, ledger and backend."""

from voxelcraft.orchestrator.orchestrator import TransactionOrchestrator
from voxelcraft.orchestrator.saga import Saga, StepFailed

__all__ = ["Saga", "StepFailed", "TransactionOrchestrator"]
