"""Shared fixtures for voxelcraft tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key
from stellar_sdk import Keypair

from voxelcraft.events.synchronizer import EventSynchronizer
from voxelcraft.models.config import AppConfig, SyncConfig
from voxelcraft.orchestrator.orchestrator import TransactionOrchestrator
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.storage.sqlite import SQLiteSyncStore
from voxelcraft.wallet.agent import KeypairSigningAgent
from voxelcraft.wallet.session import WalletSession

from tests.factories import make_contract_set
from tests.mocks import (
    MockArtifactStore,
    MockBackend,
    MockLedgerGateway,
    MockLogSource,
)

TEST_SECRET = "SBWVJTD3F5ETMVWCNI7MM4HUAPUSCUXXMUEJZJTPRWRJGXW2BF4SVQTK"
TEST_PUBLIC = Keypair.from_secret(TEST_SECRET).public_key

TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
EXPLORER_BASE = "https://stellar.expert/explorer/testnet"


def stellar_expert_link(kind: str, id: str, label: str | None = None) -> str:
    """Build an HTML anchor to stellar.expert for the report."""
    url = f"{EXPLORER_BASE}/{kind}/{id}"
    text = label or f"{id[:8]}...{id[-4:]}"
    return f'<a href="{url}" target="_blank">{text}</a>'


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add network info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "Stellar Testnet"
    meta["Test Account"] = TEST_PUBLIC


def pytest_html_results_summary(prefix, summary, postfix):
    """Inject a clickable explorer link for the test account."""
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Stellar Testnet Explorer Links</strong><br/>"
        f'Test Account: {stellar_expert_link("account", TEST_PUBLIC, TEST_PUBLIC)}'
        "</div>"
    )


def make_test_config(**overrides) -> AppConfig:
    """Build an AppConfig suitable for testing."""
    cfg = AppConfig(
        keypair_secret=TEST_SECRET,
        sync=SyncConfig(poll_interval=1, error_backoff=1, db_path=":memory:"),
    )
    cfg.networks["testnet"].contracts = make_contract_set()
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


@pytest.fixture
def test_config():
    """Default AppConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteSyncStore."""
    s = SQLiteSyncStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def registry():
    return ContractRegistry(make_contract_set(), ("VXC", "PTX"))


@pytest.fixture
def agent():
    return KeypairSigningAgent(TEST_SECRET, TESTNET_PASSPHRASE)


@pytest.fixture
def mock_ledger():
    return MockLedgerGateway(owner=TEST_PUBLIC)


@pytest.fixture
def mock_artifacts():
    return MockArtifactStore()


@pytest.fixture
def mock_backend():
    return MockBackend()


@pytest.fixture
def mock_source():
    return MockLogSource()


@pytest.fixture
async def session(agent, mock_ledger):
    """Connected WalletSession over the mock ledger."""
    s = WalletSession(agent, mock_ledger, ("VXC", "PTX"))
    await s.connect()
    return s


@pytest.fixture
def orchestrator(session, mock_artifacts, mock_ledger, mock_backend, registry):
    """Fully wired TransactionOrchestrator with mocked components."""
    return TransactionOrchestrator(session, mock_artifacts, mock_ledger, mock_backend, registry)


@pytest.fixture
async def synchronizer(mock_source, mock_backend, store, registry):
    """Started EventSynchronizer over the mock log source."""
    sync = EventSynchronizer(mock_source, backend=mock_backend, store=store, poll_interval=0.01)
    await sync.start("testnet", registry)
    yield sync
    await sync.shutdown()
