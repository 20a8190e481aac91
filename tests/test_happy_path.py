"""Every operation saga, end to end, against mocked systems."""

from __future__ import annotations

from voxelcraft.models.errors import ErrorKind
from voxelcraft.models.operations import (
    BuyFromMarket,
    CastVote,
    ClaimReward,
    ListOnMarket,
    OperationKind,
    StepStatus,
    TransferFungible,
)
from voxelcraft.orchestrator.orchestrator import (
    BUY_STEPS,
    CLAIM_STEPS,
    LIST_STEPS,
    MINT_STEPS,
    TRANSFER_STEPS,
    VOTE_STEPS,
)

from tests.conftest import TEST_PUBLIC
from tests.factories import BUILDING_NFT, ITEM_NFT, make_account, make_mint_spec


def assert_all_succeeded(result, steps):
    assert result.success, result.error
    assert result.error is None
    assert result.saga.outcome == "succeeded"
    assert [s.name for s in result.saga.steps] == list(steps)
    assert all(s.status == StepStatus.SUCCEEDED for s in result.saga.steps)


# ── Mint ──────────────────────────────────────────────────────────


async def test_mint_collectible(orchestrator, mock_artifacts, mock_ledger, mock_backend):
    progress = []
    result = await orchestrator.mint_collectible(
        make_mint_spec(), progress=lambda sent, total: progress.append((sent, total)),
    )

    assert_all_succeeded(result, MINT_STEPS)
    receipt = result.data
    assert receipt.reserved_id == 7
    assert receipt.contract_address == "CNFT"
    assert receipt.tx_hash == result.tx_hash
    assert progress[-1][0] == progress[-1][1]

    # Metadata document embeds the image URL and is what prepare-mint saw
    prepared = mock_backend.bodies("/nft/prepare-mint")[0]
    assert prepared["nftType"] == "building"
    assert prepared["metadataUrl"] == receipt.metadata_url
    assert prepared["metadata"]["image"] == mock_artifacts.gateway_url(receipt.image_hash)
    assert receipt.metadata_url.endswith(receipt.artifact_hash)

    # Ledger mint used the metadata URL
    assert mock_ledger.calls == [("mint_collectible", ("building", receipt.metadata_url))]

    confirmed = mock_backend.bodies("/nft/confirm-mint")[0]
    assert confirmed["tokenId"] == "7"
    assert confirmed["transactionHash"] == receipt.tx_hash
    assert confirmed["contractAddress"] == "CNFT"


async def test_mint_prepare_carries_idempotency_key(orchestrator, mock_backend):
    result = await orchestrator.mint_collectible(make_mint_spec())

    keys = {p: k for _, p, _, k in mock_backend.calls}
    assert keys["/nft/prepare-mint"] == f"{result.saga.id}:prepare_mint"
    assert keys["/nft/confirm-mint"] is None


# ── Marketplace ───────────────────────────────────────────────────


async def test_list_on_market(orchestrator, mock_ledger, mock_backend):
    spec = ListOnMarket(category="item", item_id=42, price="12.5", duration=86400)
    result = await orchestrator.list_on_market(spec)

    assert_all_succeeded(result, LIST_STEPS)
    assert result.data.listing_id == 11
    assert result.data.item_id == 42
    assert mock_ledger.names() == ["owner_of", "list_on_market"]
    assert mock_ledger.calls[1] == ("list_on_market", (ITEM_NFT, 42, "12.5"))

    body = mock_backend.bodies("/marketplace/prepare-listing")[0]
    assert body == {"nftContract": ITEM_NFT, "tokenId": 42, "price": "12.5", "duration": 86400}
    confirm = mock_backend.bodies("/marketplace/confirm-listing")[0]
    assert confirm == {"listingId": 11, "transactionHash": result.tx_hash}


async def test_list_owner_compare_ignores_case(orchestrator, mock_ledger):
    mock_ledger.owner = TEST_PUBLIC.lower()
    result = await orchestrator.list_on_market(
        ListOnMarket(category="item", item_id=1, price="1"),
    )
    assert result.success


async def test_buy_from_market(orchestrator, mock_ledger, mock_backend):
    mock_backend.responses["/marketplace/listings/5"] = {
        "active": True,
        "onChainListingId": 3,
        "price": "20",
        "tokenId": 9,
        "nftContract": BUILDING_NFT,
    }
    result = await orchestrator.buy_from_market(BuyFromMarket(listing_id=5))

    assert_all_succeeded(result, BUY_STEPS)
    assert mock_ledger.calls == [("buy_from_market", (3, "20"))]
    assert result.data.nft_contract == BUILDING_NFT
    assert result.data.item_id == 9
    assert result.data.buyer == TEST_PUBLIC

    confirm = mock_backend.bodies("/marketplace/confirm-buy")[0]
    assert confirm == {"listingId": 5, "transactionHash": result.tx_hash, "buyer": TEST_PUBLIC}


# ── Tokens, rewards, governance ───────────────────────────────────


async def test_transfer_fungible(orchestrator, mock_ledger, mock_backend):
    to = make_account()
    result = await orchestrator.transfer_fungible(
        TransferFungible(asset="vxc", to=to, amount="3.25"),
    )

    assert_all_succeeded(result, TRANSFER_STEPS)
    assert result.kind == OperationKind.TRANSFER_FUNGIBLE
    assert result.data.transfer_id == "tr-1"
    assert result.data.asset == "VXC"
    assert mock_ledger.calls == [("transfer_fungible", ("vxc", to, "3.25"))]
    assert mock_backend.bodies("/tokens/prepare-transfer")[0] == {
        "tokenType": "VXC", "to": to, "amount": "3.25",
    }


async def test_claim_reward(orchestrator, mock_ledger, mock_backend):
    mock_backend.responses["/rewards/4"] = {"claimable": True, "amount": "100", "type": "quest"}
    result = await orchestrator.claim_reward(ClaimReward(reward_id=4))

    assert_all_succeeded(result, CLAIM_STEPS)
    assert mock_ledger.calls == [("claim_reward", (4,))]
    assert result.data.amount == "100"
    assert result.data.reward_type == "quest"


async def test_cast_vote(orchestrator, mock_ledger, mock_backend):
    result = await orchestrator.cast_vote(CastVote(proposal_id=2, support=False))

    assert_all_succeeded(result, VOTE_STEPS)
    assert mock_ledger.calls == [("cast_vote", (2, False))]
    assert mock_backend.bodies("/dao/check-vote-eligibility") == [{"proposalId": 2}]
    assert mock_backend.bodies("/dao/confirm-vote")[0]["support"] is False


# ── Status helpers ────────────────────────────────────────────────


async def test_sync_status(orchestrator, mock_artifacts, mock_backend):
    st = await orchestrator.sync_status()
    assert st.ledger and st.store and st.backend and st.wallet_connected
    assert st.last_sync == "2026-01-01T00:00:00+00:00"
    assert mock_backend.paths("GET").count("/system/status") == 1

    mock_artifacts.available = False
    st = await orchestrator.sync_status()
    assert st.store is False
    assert st.backend is True

    mock_backend.available = False
    st = await orchestrator.sync_status()
    assert st.backend is False
    assert st.last_sync is None


async def test_sync_status_ledger_down(orchestrator, mock_ledger):
    mock_ledger.ledger = None
    st = await orchestrator.sync_status()
    assert st.ledger is False


async def test_collectible_counts(orchestrator, mock_ledger):
    mock_ledger.owned = {"item": [1, 2, 3], "land": [8]}
    counts = await orchestrator.collectible_counts(TEST_PUBLIC)
    assert counts == {"item": 3, "building": 0, "vehicle": 0, "land": 1}


async def test_results_have_typed_errors_only_on_failure(orchestrator, mock_ledger):
    mock_ledger.owner = make_account()
    result = await orchestrator.list_on_market(ListOnMarket(category="item", item_id=1, price="1"))
    assert result.data is None
    assert result.error.kind == ErrorKind.NOT_OWNER
