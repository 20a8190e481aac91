"""Read-only contract queries (simulation only, no signing needed)."""

from __future__ import annotations

import logging

from stellar_sdk import Asset, scval

from voxelcraft.models.errors import ErrorKind, OperationError
from voxelcraft.stellar.client import SorobanContractCaller
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.stellar.validation import addr_str, require_address, require_id

log = logging.getLogger(__name__)


class LedgerQueries:
    """Ownership and balance reads against the tracked contracts."""

    def __init__(self, caller: SorobanContractCaller, registry: ContractRegistry) -> None:
        self._caller = caller
        self._registry = registry

    @property
    def registry(self) -> ContractRegistry:
        return self._registry

    async def owner_of(self, category: str, item_id: int) -> str | None:
        """Current owner of a collectible, or None if it does not exist.

        A contract revert (unknown id) is "no owner"; an unreachable RPC
        still raises NETWORK_UNAVAILABLE.
        """
        contract = self._registry.collectible(category)
        token_id = require_id(item_id, "item id")
        try:
            owner = await self._caller.read(contract, "owner_of", [scval.to_uint64(token_id)])
        except OperationError as exc:
            if exc.kind == ErrorKind.NETWORK_UNAVAILABLE:
                raise
            log.debug("owner_of(%s, %d) reverted: %s", category, token_id, exc)
            return None
        return addr_str(owner) if owner is not None else None

    async def fungible_balance(self, asset: str, address: str) -> int:
        require_address(address)
        contract = self._registry.token(asset)
        value = await self._caller.read(contract, "balance", [scval.to_address(address)])
        return int(value or 0)

    async def native_balance(self, address: str) -> int | None:
        """XLM balance in stroops via the native asset contract. None on failure."""
        require_address(address)
        contract = Asset.native().contract_id(self._caller.network_passphrase)
        try:
            value = await self._caller.read(contract, "balance", [scval.to_address(address)])
        except OperationError as exc:
            log.warning("native balance of %s failed: %s", address[:16], exc)
            return None
        return int(value or 0)

    async def collectibles_owned_by(self, category: str, address: str) -> list[int]:
        """Enumerate owned ids count-then-index.

        Best-effort: any failed read, the count or an index, yields an empty
        list. A partial enumeration is never returned.
        """
        require_address(address)
        contract = self._registry.collectible(category)
        owner = scval.to_address(address)
        owned: list[int] = []
        try:
            count = int(await self._caller.read(contract, "balance", [owner]) or 0)
            for index in range(count):
                token_id = await self._caller.read(
                    contract, "token_of_owner_by_index", [owner, scval.to_uint64(index)],
                )
                owned.append(int(token_id))
        except OperationError as exc:
            log.warning(
                "collectible enumeration for %s (%s) failed after %d ids: %s",
                address[:16], category, len(owned), exc,
            )
            return []
        return owned

    async def latest_ledger(self) -> int | None:
        try:
            return await self._caller.latest_ledger()
        except OperationError as exc:
            log.warning("latest ledger query failed: %s", exc)
            return None
