"""Decode raw contract logs into NormalizedEvents.

Topic conventions of the tracked contracts (topic[0] is a symbol):

    token        transfer [from, to]    data: amount
                 approve  [from, spender] data: [amount, expiration_ledger]
    collectible  transfer [from, to]    data: token_id   (from = zero account on mint)
                 mint     [to]          data: token_id
    marketplace  listed   [seller]      data: [listing_id, nft_contract, token_id, price]
                 sold     [buyer]       data: [listing_id, seller, price]
                 delisted [seller]      data: listing_id
                 bid      [bidder]      data: [listing_id, amount]
    reward vault claimed  [user]        data: [reward_id, amount]
    dao          proposal [proposer]    data: proposal_id
                 vote     [voter]       data: [proposal_id, support, weight]
                 executed []            data: proposal_id

Map-valued data is merged into the argument map as-is.
"""

from __future__ import annotations

import logging
from typing import Any

from voxelcraft.models.events import ContractFamily, EventType, NormalizedEvent, RawLog
from voxelcraft.stellar.validation import ZERO_ACCOUNT

log = logging.getLogger(__name__)

F = ContractFamily
E = EventType

# (family, topic symbol) -> (event type, topic arg names, data arg names)
EVENT_TABLE: dict[tuple[ContractFamily, str], tuple[EventType, tuple[str, ...], tuple[str, ...]]] = {
    (F.FUNGIBLE, "transfer"): (E.TOKEN_TRANSFER, ("from", "to"), ("amount",)),
    (F.FUNGIBLE, "approve"): (E.TOKEN_APPROVAL, ("owner", "spender"), ("amount", "expirationLedger")),
    (F.COLLECTIBLE, "transfer"): (E.NFT_TRANSFER, ("from", "to"), ("tokenId",)),
    (F.COLLECTIBLE, "mint"): (E.NFT_MINTED, ("to",), ("tokenId",)),
    (F.MARKETPLACE, "listed"): (E.NFT_LISTED, ("seller",), ("listingId", "nftContract", "tokenId", "price")),
    (F.MARKETPLACE, "sold"): (E.NFT_SOLD, ("buyer",), ("listingId", "seller", "price")),
    (F.MARKETPLACE, "delisted"): (E.NFT_DELISTED, ("seller",), ("listingId",)),
    (F.MARKETPLACE, "bid"): (E.BID_PLACED, ("bidder",), ("listingId", "amount")),
    (F.REWARD, "claimed"): (E.REWARD_CLAIMED, ("user",), ("rewardId", "amount")),
    (F.GOVERNANCE, "proposal"): (E.PROPOSAL_CREATED, ("proposer",), ("proposalId",)),
    (F.GOVERNANCE, "vote"): (E.VOTE_CASTED, ("voter",), ("proposalId", "support", "weight")),
    (F.GOVERNANCE, "executed"): (E.PROPOSAL_EXECUTED, (), ("proposalId",)),
}

# Event types the live feed delivers for a freshly tracked contract
DEFAULT_EVENTS: dict[ContractFamily, frozenset[EventType]] = {
    F.FUNGIBLE: frozenset({E.TOKEN_TRANSFER}),
    F.COLLECTIBLE: frozenset({E.NFT_TRANSFER, E.NFT_MINTED}),
    F.MARKETPLACE: frozenset({E.NFT_LISTED, E.NFT_SOLD}),
    F.REWARD: frozenset({E.REWARD_CLAIMED}),
    F.GOVERNANCE: frozenset({E.PROPOSAL_CREATED, E.VOTE_CASTED}),
}


def family_events(family: ContractFamily) -> frozenset[EventType]:
    """Every event type a contract family can emit."""
    return frozenset(t for (f, _), (t, _, _) in EVENT_TABLE.items() if f == family)


def _data_args(data: Any, names: tuple[str, ...]) -> dict[str, Any]:
    if isinstance(data, dict):
        return {str(k): v for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return dict(zip(names, data))
    if data is None or not names:
        return {}
    return {names[0]: data}


def normalize(raw: RawLog, family: ContractFamily) -> NormalizedEvent | None:
    """Normalize one log of a contract of ``family``. None if unrecognized."""
    if not raw.topics or not isinstance(raw.topics[0], str):
        return None
    entry = EVENT_TABLE.get((family, raw.topics[0]))
    if entry is None:
        log.debug("Ignoring %s event %r from %s", family.value, raw.topics[0], raw.contract_id[:12])
        return None
    event_type, topic_names, data_names = entry

    args: dict[str, Any] = dict(zip(topic_names, raw.topics[1:]))
    args.update(_data_args(raw.data, data_names))

    if family == F.COLLECTIBLE:
        if event_type == E.NFT_MINTED:
            args.setdefault("from", ZERO_ACCOUNT)
        elif args.get("from") == ZERO_ACCOUNT:
            event_type = E.NFT_MINTED

    return NormalizedEvent(
        type=event_type,
        contract=raw.contract_id,
        args=args,
        block_number=raw.ledger,
        tx_hash=raw.tx_hash,
    )
