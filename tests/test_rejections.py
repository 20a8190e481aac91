"""Stop-on-first-failure behaviour of every saga."""

from __future__ import annotations

import pytest

from voxelcraft.models.errors import (
    ErrorKind,
    OperationError,
    network_unavailable,
    stale_state,
    upstream_failure,
    user_rejected,
)
from voxelcraft.models.operations import (
    BuyFromMarket,
    CastVote,
    ClaimReward,
    ListOnMarket,
    StepStatus,
    TransferFungible,
)
from voxelcraft.orchestrator.orchestrator import TransactionOrchestrator
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.wallet.session import WalletSession

from tests.factories import make_account, make_contract_set, make_metadata, make_mint_spec
from tests.mocks import MockArtifactStore


def executed(result) -> list[str]:
    return result.saga.executed_steps()


# ── Mint ──────────────────────────────────────────────────────────


async def test_mint_upload_failure_stops_before_prepare(orchestrator, mock_artifacts,
                                                        mock_ledger, mock_backend):
    """Store quota exceeded -> UPSTREAM_FAILURE at upload, nothing else runs."""
    mock_artifacts.upload_error = upstream_failure("upload: quota exceeded (HTTP 429)")

    result = await orchestrator.mint_collectible(make_mint_spec())

    assert not result.success
    assert result.failed_step == "upload_artifacts"
    assert result.error.kind == ErrorKind.UPSTREAM_FAILURE
    assert mock_backend.calls == []
    assert mock_ledger.calls == []
    assert executed(result) == ["validate_input", "upload_artifacts"]


async def test_mint_invalid_metadata_uploads_nothing(orchestrator, mock_artifacts):
    spec = make_mint_spec(metadata=make_metadata(attributes=[{"value": 3}]))

    result = await orchestrator.mint_collectible(spec)

    assert result.failed_step == "validate_input"
    assert result.error.kind == ErrorKind.INVALID_INPUT
    assert "trait_type" in result.error.message
    assert mock_artifacts.upload_calls == []


async def test_mint_unknown_category(orchestrator, mock_artifacts):
    result = await orchestrator.mint_collectible(make_mint_spec(category="spaceship"))
    assert result.error.kind == ErrorKind.INVALID_INPUT
    assert mock_artifacts.upload_calls == []


async def test_mint_signature_declined(orchestrator, mock_ledger, mock_backend):
    """Prepare ran, the ledger call was declined, confirm never runs."""
    mock_ledger.failures["mint_collectible"] = user_rejected()

    result = await orchestrator.mint_collectible(make_mint_spec())

    assert result.failed_step == "ledger_mint"
    assert result.error.kind == ErrorKind.USER_REJECTED
    assert "/nft/prepare-mint" in mock_backend.paths()
    assert "/nft/confirm-mint" not in mock_backend.paths()
    assert result.saga.step("confirm_mint").status == StepStatus.PENDING


async def test_mint_confirm_failure_keeps_tx_hash(orchestrator, mock_backend):
    mock_backend.responses["/nft/confirm-mint"] = upstream_failure("Token already confirmed")

    result = await orchestrator.mint_collectible(make_mint_spec())

    assert result.failed_step == "confirm_mint"
    assert result.error.message == "Token already confirmed"
    assert result.tx_hash  # ledger state changed before the failure


async def test_mint_prepare_missing_token_id(orchestrator, mock_backend, mock_ledger):
    mock_backend.responses["/nft/prepare-mint"] = {"contractAddress": "CNFT"}

    result = await orchestrator.mint_collectible(make_mint_spec())

    assert result.failed_step == "prepare_mint"
    assert result.error.kind == ErrorKind.UPSTREAM_FAILURE
    assert mock_ledger.calls == []


# ── Listing ───────────────────────────────────────────────────────


async def test_list_not_owner_skips_prepare_and_ledger(orchestrator, mock_ledger, mock_backend):
    mock_ledger.owner = make_account()

    result = await orchestrator.list_on_market(
        ListOnMarket(category="item", item_id=3, price="5"),
    )

    assert result.failed_step == "check_owner"
    assert result.error.kind == ErrorKind.NOT_OWNER
    assert mock_backend.calls == []
    assert mock_ledger.names() == ["owner_of"]


async def test_list_nonexistent_item(orchestrator, mock_ledger):
    mock_ledger.owner = None
    result = await orchestrator.list_on_market(
        ListOnMarket(category="item", item_id=3, price="5"),
    )
    assert result.error.kind == ErrorKind.NOT_OWNER


@pytest.mark.parametrize("price", ["0", "-1", "abc", "1.123456789"])
async def test_list_bad_price(orchestrator, mock_ledger, price):
    result = await orchestrator.list_on_market(
        ListOnMarket(category="item", item_id=3, price=price),
    )
    assert result.failed_step == "validate_input"
    assert result.error.kind == ErrorKind.INVALID_INPUT
    assert mock_ledger.calls == []


async def test_list_ledger_failure_reports_contract_error(orchestrator, mock_ledger, mock_backend):
    mock_ledger.failures["list_on_market"] = OperationError(
        ErrorKind.INSUFFICIENT_FUNDS, "list_nft: insufficient balance for fee",
    )

    result = await orchestrator.list_on_market(
        ListOnMarket(category="item", item_id=3, price="5"),
    )

    assert result.failed_step == "ledger_list"
    assert result.error.kind == ErrorKind.INSUFFICIENT_FUNDS
    assert "/marketplace/confirm-listing" not in mock_backend.paths()


# ── Buy ───────────────────────────────────────────────────────────


async def test_buy_inactive_listing(orchestrator, mock_ledger, mock_backend):
    mock_backend.responses["/marketplace/listings/8"] = {"active": False, "price": "3"}

    result = await orchestrator.buy_from_market(BuyFromMarket(listing_id=8))

    assert result.failed_step == "read_listing"
    assert result.error.kind == ErrorKind.STALE_STATE
    assert mock_ledger.calls == []
    assert "/marketplace/prepare-buy" not in mock_backend.paths()


async def test_buy_backend_unreachable(orchestrator, mock_backend):
    mock_backend.responses["/marketplace/listings/8"] = network_unavailable("GET timed out")

    result = await orchestrator.buy_from_market(BuyFromMarket(listing_id=8))

    assert result.error.kind == ErrorKind.NETWORK_UNAVAILABLE


async def test_buy_prepare_error_is_verbatim(orchestrator, mock_backend, mock_ledger):
    mock_backend.responses["/marketplace/listings/8"] = {"active": True, "price": "3"}
    mock_backend.responses["/marketplace/prepare-buy"] = upstream_failure("Cannot buy own listing")

    result = await orchestrator.buy_from_market(BuyFromMarket(listing_id=8))

    assert result.failed_step == "prepare_buy"
    assert result.error == upstream_failure("Cannot buy own listing")
    assert mock_ledger.calls == []


# ── Transfer, claim, vote ─────────────────────────────────────────


async def test_transfer_invalid_recipient(orchestrator, mock_backend, mock_ledger):
    result = await orchestrator.transfer_fungible(
        TransferFungible(asset="VXC", to="not-an-address", amount="1"),
    )
    assert result.failed_step == "validate_input"
    assert result.error.kind == ErrorKind.INVALID_INPUT
    assert mock_backend.calls == []
    assert mock_ledger.calls == []


async def test_transfer_unknown_asset(orchestrator):
    result = await orchestrator.transfer_fungible(
        TransferFungible(asset="DOGE", to=make_account(), amount="1"),
    )
    assert result.error.kind == ErrorKind.INVALID_INPUT


async def test_claim_not_claimable(orchestrator, mock_backend, mock_ledger):
    mock_backend.responses["/rewards/4"] = {"claimable": False}

    result = await orchestrator.claim_reward(ClaimReward(reward_id=4))

    assert result.failed_step == "read_reward"
    assert result.error.kind == ErrorKind.STALE_STATE
    assert mock_ledger.calls == []


async def test_vote_not_eligible(orchestrator, mock_backend, mock_ledger):
    mock_backend.responses["/dao/check-vote-eligibility"] = {"eligible": False}

    result = await orchestrator.cast_vote(CastVote(proposal_id=1, support=True))

    assert result.failed_step == "check_eligibility"
    assert result.error.kind == ErrorKind.STALE_STATE
    assert mock_ledger.calls == []


async def test_vote_already_voted_on_ledger(orchestrator, mock_ledger, mock_backend):
    mock_ledger.failures["cast_vote"] = stale_state("vote: already voted")

    result = await orchestrator.cast_vote(CastVote(proposal_id=1, support=True))

    assert result.failed_step == "ledger_vote"
    assert result.error.kind == ErrorKind.STALE_STATE
    assert "/dao/confirm-vote" not in mock_backend.paths()


# ── Wallet precondition ───────────────────────────────────────────


async def test_operations_require_connected_wallet(agent, mock_ledger, mock_backend):
    session = WalletSession(agent, mock_ledger)
    orch = TransactionOrchestrator(
        session,
        MockArtifactStore(),
        mock_ledger,
        mock_backend,
        ContractRegistry(make_contract_set(), ("VXC", "PTX")),
    )

    result = await orch.claim_reward(ClaimReward(reward_id=1))

    assert result.failed_step == "validate_input"
    assert result.error.kind == ErrorKind.INVALID_INPUT
    assert mock_backend.calls == []


async def test_unexpected_exception_becomes_upstream_failure(orchestrator, mock_backend):
    async def broken(path, params=None):
        raise RuntimeError("boom")

    mock_backend.get = broken
    result = await orchestrator.claim_reward(ClaimReward(reward_id=4))

    assert result.failed_step == "read_reward"
    assert result.error.kind == ErrorKind.UPSTREAM_FAILURE
    assert "boom" in result.error.message
