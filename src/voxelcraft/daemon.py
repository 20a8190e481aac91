"""Application wiring and the event synchronizer daemon loop."""

from __future__ import annotations

import asyncio
import logging
import signal

from voxelcraft.backend.client import HttpBackendClient
from voxelcraft.events.synchronizer import EventSynchronizer
from voxelcraft.ipfs import make_artifact_store
from voxelcraft.models.config import AppConfig, NetworkConfig
from voxelcraft.models.events import EventType, NormalizedEvent
from voxelcraft.orchestrator.orchestrator import TransactionOrchestrator
from voxelcraft.stellar.client import SorobanContractCaller
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.stellar.gateway import SorobanLedgerGateway
from voxelcraft.stellar.poller import SorobanLogSource
from voxelcraft.stellar.queries import LedgerQueries
from voxelcraft.storage.sqlite import SQLiteSyncStore
from voxelcraft.wallet.agent import ConfirmCallback, KeypairSigningAgent
from voxelcraft.wallet.session import (
    INVALIDATED_DISCONNECT,
    WalletSession,
)

log = logging.getLogger(__name__)


class VoxelcraftApp:
    """Owns one instance of every component for the active network.

    There is exactly one WalletSession and one EventSynchronizer per app;
    everything else receives them by reference.
    """

    def __init__(self, cfg: AppConfig, confirm: ConfirmCallback | None = None) -> None:
        self.cfg = cfg
        self.network = cfg.active_network()

        self.store = SQLiteSyncStore(cfg.sync.db_path)
        self.backend = HttpBackendClient(
            cfg.backend.base_url, cfg.backend.timeout, cfg.backend.auth_token,
        )
        self.artifacts = make_artifact_store(cfg.store)
        self.agent = KeypairSigningAgent(
            cfg.keypair_secret, self.network.network_passphrase, confirm,
        )

        self._bind(self.network)
        self.session = WalletSession(self.agent, self.queries, cfg.assets)
        self.gateway = SorobanLedgerGateway(self.caller, self.registry, self.session)
        self.orchestrator = self._make_orchestrator()
        self.sync = EventSynchronizer(
            self._make_source(self.network),
            backend=self.backend,
            store=self.store,
            poll_interval=cfg.sync.poll_interval,
            error_backoff=cfg.sync.error_backoff,
        )
        self._unregister = self.session.on_invalidated(self._on_session_invalidated)

    def _bind(self, network: NetworkConfig) -> None:
        self.network = network
        self.caller = SorobanContractCaller(
            network.rpc_url, network.network_passphrase, timeout=self.cfg.call_timeout,
        )
        self.registry = ContractRegistry(network.contracts, self.cfg.assets)
        self.queries = LedgerQueries(self.caller, self.registry)

    def _make_source(self, network: NetworkConfig) -> SorobanLogSource:
        return SorobanLogSource(
            network.rpc_url,
            start_ledger=self.cfg.sync.start_ledger,
            timeout=self.cfg.call_timeout,
        )

    def _make_orchestrator(self) -> TransactionOrchestrator:
        return TransactionOrchestrator(
            self.session, self.artifacts, self.gateway, self.backend, self.registry,
        )

    async def open(self, connect_wallet: bool = True) -> None:
        await self.store.initialize()
        if connect_wallet:
            info = await self.session.connect()
            log.info("Connected %s on %s", info.address[:16], self.network.name)

    async def close(self) -> None:
        self._unregister()
        await self.sync.close()
        await self.caller.close()
        await self.backend.close()
        await self.store.close()

    async def switch_network(self, name: str) -> None:
        """Ask the agent to switch; the invalidation handler rebinds everything."""
        target = self.cfg.networks.get(name)
        if target is None:
            raise ValueError(f"unknown network {name!r}")
        await self.session.switch_network(target.network_passphrase)

    async def _on_session_invalidated(self, reason: str) -> None:
        if reason == INVALIDATED_DISCONNECT:
            await self.sync.shutdown()
            return

        passphrase = await self.agent.network_id()
        target = next(
            (n for n in self.cfg.networks.values() if n.network_passphrase == passphrase),
            None,
        )
        source = None
        if target is not None and target.name != self.network.name:
            old_caller = self.caller
            self._bind(target)
            self.session.bind_ledger(self.queries)
            self.gateway = SorobanLedgerGateway(self.caller, self.registry, self.session)
            self.orchestrator = self._make_orchestrator()
            await old_caller.close()
            source = self._make_source(target)
            log.info("Switched to network %s", target.name)
        elif target is None:
            log.warning("Signing agent moved to an unconfigured network")

        await self.sync.reset(self.network.name, self.registry, source)
        await self.store.log_activity(
            "session_invalidated", f"Session invalidated ({reason})", network=self.network.name,
        )
        try:
            await self.session.connect()
        except Exception as exc:
            log.error("Reconnect after %s failed: %s", reason, exc)


class SyncDaemon:
    """Runs the event synchronizer until stopped, recording delivered events."""

    def __init__(self, app: VoxelcraftApp) -> None:
        self.app = app

    async def start(self) -> None:
        """Initialize components and run the polling loop."""
        app = self.app
        log.info("Starting voxelcraft sync daemon")
        log.info("  Network: %s", app.network.name)
        log.info("  RPC: %s", app.network.rpc_url)
        log.info("  Backend: %s", app.cfg.backend.base_url)
        log.info("  Contracts: %d configured", len(app.registry))

        await app.open(connect_wallet=bool(app.cfg.keypair_secret))
        await app.sync.start(app.network.name, app.registry)
        for event_type in EventType:
            await app.sync.subscribe(event_type, self._record_event)
        await app.store.log_activity("daemon_started", "Daemon started", network=app.network.name)

        try:
            await app.sync.run()
        except asyncio.CancelledError:
            log.info("Sync loop cancelled")
        finally:
            await app.store.log_activity("daemon_stopped", "Daemon stopped", network=app.network.name)
            await app.close()
            log.info("Daemon shut down cleanly")

    async def stop(self) -> None:
        """Signal the daemon to stop gracefully."""
        log.info("Stop requested")
        self.app.sync.stop()

    async def _record_event(self, event: NormalizedEvent) -> None:
        log.info(
            "%s on %s at ledger %d (tx=%s)",
            event.type.value, event.contract[:12], event.block_number, event.tx_hash[:16],
        )
        await self.app.store.log_activity(
            event.type.value.lower(),
            f"{event.type.value} from {event.contract[:12]}",
            tx_hash=event.tx_hash,
            network=self.app.network.name,
        )


async def run_daemon(cfg: AppConfig) -> None:
    """Entry point for running the daemon."""
    daemon = SyncDaemon(VoxelcraftApp(cfg))

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(daemon.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await daemon.start()
