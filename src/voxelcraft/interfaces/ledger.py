"""Ledger protocols - read-only queries and the state-changing gateway."""

from __future__ import annotations

from typing import Protocol

from voxelcraft.models.records import TxResult


class LedgerReader(Protocol):
    """Read-only contract queries (simulation only, no signing)."""

    async def owner_of(self, category: str, item_id: int) -> str | None:
        ...

    async def fungible_balance(self, asset: str, address: str) -> int:
        """Balance in base units. Raises OperationError on failure."""
        ...

    async def native_balance(self, address: str) -> int | None:
        """XLM in stroops, None when it cannot be read."""
        ...

    async def collectibles_owned_by(self, category: str, address: str) -> list[int]:
        """Best-effort enumeration; empty if the first read fails."""
        ...

    async def latest_ledger(self) -> int | None:
        ...


class LedgerGateway(LedgerReader, Protocol):
    """Signed contract calls. Each call blocks until ledger inclusion."""

    async def transfer_fungible(self, asset: str, to: str, amount: str) -> TxResult:
        ...

    async def mint_collectible(self, category: str, metadata_url: str) -> TxResult:
        ...

    async def transfer_collectible(self, category: str, to: str, item_id: int) -> TxResult:
        ...

    async def list_on_market(self, contract_address: str, item_id: int, price: str) -> TxResult:
        """Approve the marketplace, then list. Approval is not rolled back."""
        ...

    async def buy_from_market(self, listing_id: int, price: str) -> TxResult:
        ...

    async def claim_reward(self, reward_id: int) -> TxResult:
        ...

    async def cast_vote(self, proposal_id: int, support: bool) -> TxResult:
        ...
