"""WalletSession lifecycle and the keypair signing agent."""

from __future__ import annotations

import asyncio
import base64

import pytest
from stellar_sdk import Keypair

from voxelcraft.models.errors import ErrorKind, OperationError, upstream_failure
from voxelcraft.wallet.agent import KeypairSigningAgent
from voxelcraft.wallet.session import (
    INVALIDATED_ACCOUNT,
    INVALIDATED_DISCONNECT,
    INVALIDATED_NETWORK,
    WalletSession,
)

from tests.conftest import TEST_PUBLIC, TEST_SECRET, TESTNET_PASSPHRASE
from tests.mocks import MockLedgerGateway


async def test_connect_reads_balances(session):
    assert session.connected
    assert session.current_address() == TEST_PUBLIC
    assert session.current_network_id() == TESTNET_PASSPHRASE
    snapshot = session.cached_balances()
    assert snapshot.balances == {"VXC": 50_000_000, "PTX": 0}
    assert snapshot.native == 100_000_000


async def test_connect_survives_balance_failure(agent):
    ledger = MockLedgerGateway()
    ledger.failures["fungible_balance"] = upstream_failure("balance: simulation failed")
    session = WalletSession(agent, ledger)

    info = await session.connect()

    assert info.address == TEST_PUBLIC
    assert info.balances.balances == {}


async def test_connect_declined(mock_ledger):
    agent = KeypairSigningAgent(TEST_SECRET, TESTNET_PASSPHRASE, confirm=lambda purpose: False)
    session = WalletSession(agent, mock_ledger)

    with pytest.raises(OperationError) as exc_info:
        await session.connect()

    assert exc_info.value.kind == ErrorKind.USER_REJECTED
    assert not session.connected


async def test_no_agent_secret(mock_ledger):
    session = WalletSession(KeypairSigningAgent("", TESTNET_PASSPHRASE), mock_ledger)
    with pytest.raises(OperationError) as exc_info:
        await session.connect()
    assert exc_info.value.kind == ErrorKind.INVALID_INPUT


async def test_balances_rejects_bad_address(session):
    with pytest.raises(OperationError) as exc_info:
        await session.balances("GNOTANADDRESS")
    assert exc_info.value.kind == ErrorKind.INVALID_INPUT


async def test_account_change_invalidates(session, agent):
    reasons = []
    session.on_invalidated(reasons.append)

    agent.change_account(Keypair.random().secret)

    assert reasons == [INVALIDATED_ACCOUNT]
    assert not session.connected
    assert session.cached_balances() is None


async def test_network_switch_invalidates(session):
    reasons = []
    session.on_invalidated(reasons.append)

    assert await session.switch_network("Public Global Stellar Network ; September 2015")

    assert reasons == [INVALIDATED_NETWORK]
    assert not session.connected


async def test_async_invalidation_callback_is_scheduled(session, agent):
    seen = asyncio.Event()

    async def on_invalid(reason):
        seen.set()

    session.on_invalidated(on_invalid)
    agent.change_account(Keypair.random().secret)

    await asyncio.wait_for(seen.wait(), timeout=1)


async def test_disconnect_emits_once(session):
    reasons = []
    remove = session.on_invalidated(reasons.append)

    await session.disconnect()
    await session.disconnect()

    assert reasons == [INVALIDATED_DISCONNECT]
    remove()
    await session.connect()
    await session.disconnect()
    assert reasons == [INVALIDATED_DISCONNECT]


async def test_reconnect_after_invalidation(session, agent):
    new = Keypair.random()
    agent.change_account(new.secret)

    info = await session.connect()

    assert info.address == new.public_key


async def test_sign_message(session):
    signature = base64.b64decode(await session.sign_message("hello voxel"))
    Keypair.from_public_key(TEST_PUBLIC).verify(b"hello voxel", signature)


async def test_authorize_requires_connection(agent, mock_ledger):
    session = WalletSession(agent, mock_ledger)
    with pytest.raises(OperationError) as exc_info:
        await session.authorize("transfer")
    assert exc_info.value.kind == ErrorKind.INVALID_INPUT


async def test_authorize_with_async_confirm(mock_ledger):
    prompts = []

    async def confirm(purpose):
        prompts.append(purpose)
        return purpose != "vote for proposal #1"

    agent = KeypairSigningAgent(TEST_SECRET, TESTNET_PASSPHRASE, confirm=confirm)
    session = WalletSession(agent, mock_ledger)
    await session.connect()

    keypair = await session.authorize("claim reward #2")
    assert keypair.public_key == TEST_PUBLIC
    with pytest.raises(OperationError) as exc_info:
        await session.authorize("vote for proposal #1")
    assert exc_info.value.kind == ErrorKind.USER_REJECTED
    assert prompts == ["connect", "claim reward #2", "vote for proposal #1"]
