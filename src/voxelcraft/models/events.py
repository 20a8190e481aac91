"""Ledger event models: raw decoded logs and normalized events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ContractFamily(str, Enum):
    """Interface family of a tracked contract."""

    FUNGIBLE = "fungible"
    COLLECTIBLE = "collectible"
    MARKETPLACE = "marketplace"
    REWARD = "reward"
    GOVERNANCE = "governance"


class EventType(str, Enum):
    """Closed set of normalized event kinds."""

    TOKEN_TRANSFER = "TOKEN_TRANSFER"
    TOKEN_APPROVAL = "TOKEN_APPROVAL"
    NFT_MINTED = "NFT_MINTED"
    NFT_TRANSFER = "NFT_TRANSFER"
    NFT_LISTED = "NFT_LISTED"
    NFT_SOLD = "NFT_SOLD"
    NFT_DELISTED = "NFT_DELISTED"
    BID_PLACED = "BID_PLACED"
    REWARD_CLAIMED = "REWARD_CLAIMED"
    PROPOSAL_CREATED = "PROPOSAL_CREATED"
    VOTE_CASTED = "VOTE_CASTED"
    PROPOSAL_EXECUTED = "PROPOSAL_EXECUTED"


@dataclass(frozen=True)
class RawLog:
    """A contract event as delivered by the RPC node, XDR already decoded.

    ``topics`` and ``data`` hold native Python values (addresses as strkey
    strings, symbols as ``str``, integers as ``int``).
    """

    contract_id: str
    topics: tuple[Any, ...]
    data: Any
    ledger: int
    tx_hash: str
    event_id: str = ""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class NormalizedEvent:
    """Canonical record of one ledger event occurrence.

    Delivery is at-least-once: the same occurrence may be dispatched more
    than once (e.g. after the poll cursor is rewound) and consumers must be
    idempotent on ``(tx_hash, type, contract, args)``.
    """

    type: EventType
    contract: str
    args: dict[str, Any]
    block_number: int
    tx_hash: str
    observed_at: str = field(default_factory=_utcnow)  # ISO 8601, wall clock

    def to_payload(self) -> dict:
        """JSON body for the backend's ``/events/contract`` endpoint."""
        return {
            "type": self.type.value,
            "contract": self.contract,
            "data": {k: _jsonable(v) for k, v in self.args.items()},
            "blockNumber": self.block_number,
            "transactionHash": self.tx_hash,
            "timestamp": self.observed_at,
        }


def _jsonable(value: Any) -> Any:
    # i128/u64 amounts can exceed JS number precision on the backend side
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value
