"""Soroban ledger gateway - signed contract calls for every operation kind."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from stellar_sdk import Keypair, scval, xdr

from voxelcraft.models.errors import OperationError
from voxelcraft.models.records import TxResult
from voxelcraft.stellar.client import SorobanContractCaller
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.stellar.queries import LedgerQueries
from voxelcraft.stellar.validation import require_address, require_id, to_base_units

log = logging.getLogger(__name__)


class Authorizer(Protocol):
    async def authorize(self, purpose: str) -> Keypair:
        ...


class SorobanLedgerGateway(LedgerQueries):
    """State-changing calls, each blocking until ledger inclusion.

    Failures never raise: they come back as ``TxResult(success=False)``
    carrying a classified ``OperationError`` (and the tx hash if the
    transaction reached the ledger).
    """

    def __init__(
        self,
        caller: SorobanContractCaller,
        registry: ContractRegistry,
        session: Authorizer,
    ) -> None:
        super().__init__(caller, registry)
        self._session = session

    async def transfer_fungible(self, asset: str, to: str, amount: str) -> TxResult:
        try:
            contract = self._registry.token(asset)
            recipient = require_address(to)
            units = to_base_units(amount)
        except OperationError as exc:
            return self._rejected("transfer", exc)
        return await self._submit(
            f"transfer {amount} {asset.upper()} to {recipient[:8]}",
            contract,
            "transfer",
            lambda me: [
                scval.to_address(me),
                scval.to_address(recipient),
                scval.to_int128(units),
            ],
        )

    async def mint_collectible(self, category: str, metadata_url: str) -> TxResult:
        try:
            contract = self._registry.collectible(category)
        except OperationError as exc:
            return self._rejected("mint", exc)
        return await self._submit(
            f"mint {category} collectible",
            contract,
            "mint",
            lambda me: [scval.to_address(me), scval.to_string(metadata_url)],
        )

    async def transfer_collectible(self, category: str, to: str, item_id: int) -> TxResult:
        try:
            contract = self._registry.collectible(category)
            recipient = require_address(to)
            token_id = require_id(item_id, "item id")
        except OperationError as exc:
            return self._rejected("transfer", exc)
        return await self._submit(
            f"transfer {category} #{token_id} to {recipient[:8]}",
            contract,
            "transfer",
            lambda me: [
                scval.to_address(me),
                scval.to_address(recipient),
                scval.to_uint64(token_id),
            ],
        )

    async def list_on_market(self, contract_address: str, item_id: int, price: str) -> TxResult:
        """Approve the marketplace for the item, then list it.

        If the listing call fails the approval stays granted.
        """
        try:
            nft_contract = require_address(contract_address)
            marketplace = self._registry.marketplace
            token_id = require_id(item_id, "item id")
            units = to_base_units(price, "price")
        except OperationError as exc:
            return self._rejected("list_nft", exc)

        approved = await self._submit(
            f"approve marketplace for item #{token_id}",
            nft_contract,
            "approve",
            lambda me: [
                scval.to_address(me),
                scval.to_address(marketplace),
                scval.to_uint64(token_id),
            ],
        )
        if not approved.success:
            return approved

        return await self._submit(
            f"list item #{token_id} for {price}",
            marketplace,
            "list_nft",
            lambda me: [
                scval.to_address(me),
                scval.to_address(nft_contract),
                scval.to_uint64(token_id),
                scval.to_int128(units),
            ],
        )

    async def buy_from_market(self, listing_id: int, price: str) -> TxResult:
        try:
            marketplace = self._registry.marketplace
            ident = require_id(listing_id, "listing id")
            units = to_base_units(price, "price")
        except OperationError as exc:
            return self._rejected("buy_nft", exc)
        return await self._submit(
            f"buy listing #{ident} for {price}",
            marketplace,
            "buy_nft",
            lambda me: [
                scval.to_address(me),
                scval.to_uint64(ident),
                scval.to_int128(units),
            ],
        )

    async def claim_reward(self, reward_id: int) -> TxResult:
        try:
            vault = self._registry.reward_vault
            ident = require_id(reward_id, "reward id")
        except OperationError as exc:
            return self._rejected("claim_reward", exc)
        return await self._submit(
            f"claim reward #{ident}",
            vault,
            "claim_reward",
            lambda me: [scval.to_address(me), scval.to_uint64(ident)],
        )

    async def cast_vote(self, proposal_id: int, support: bool) -> TxResult:
        try:
            dao = self._registry.dao
            ident = require_id(proposal_id, "proposal id")
        except OperationError as exc:
            return self._rejected("vote", exc)
        return await self._submit(
            f"vote {'for' if support else 'against'} proposal #{ident}",
            dao,
            "vote",
            lambda me: [
                scval.to_address(me),
                scval.to_uint64(ident),
                scval.to_bool(bool(support)),
            ],
        )

    # -- internals -------------------------------------------------------

    async def _submit(self, purpose, contract_id, function, build) -> TxResult:
        try:
            signer = await self._session.authorize(purpose)
            parameters: Sequence[xdr.SCVal] = build(signer.public_key)
            tx_hash, value = await self._caller.write(contract_id, function, parameters, signer)
        except OperationError as exc:
            log.warning("%s failed: %s", function, exc)
            return TxResult(success=False, tx_hash=getattr(exc, "tx_hash", None), error=exc)
        return TxResult(success=True, tx_hash=tx_hash, return_value=value)

    @staticmethod
    def _rejected(function: str, exc: OperationError) -> TxResult:
        log.warning("%s rejected before submission: %s", function, exc)
        return TxResult(success=False, error=exc)
