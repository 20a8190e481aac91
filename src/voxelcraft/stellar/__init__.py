"""Stellar/Soroban integration components."""

from voxelcraft.stellar.client import SorobanContractCaller, classify_contract_error
from voxelcraft.stellar.contracts import ContractRegistry, TrackedContract
from voxelcraft.stellar.gateway import SorobanLedgerGateway
from voxelcraft.stellar.poller import SorobanLogSource
from voxelcraft.stellar.queries import LedgerQueries

__all__ = [
    "SorobanContractCaller",
    "classify_contract_error",
    "ContractRegistry",
    "TrackedContract",
    "SorobanLedgerGateway",
    "SorobanLogSource",
    "LedgerQueries",
]
