"""WalletSession - the single connection to the user's signing agent."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from stellar_sdk import Keypair

from voxelcraft.interfaces.ledger import LedgerReader
from voxelcraft.interfaces.signer import SigningAgent
from voxelcraft.models.config import DEFAULT_ASSETS
from voxelcraft.models.errors import OperationError, invalid_input
from voxelcraft.models.records import BalanceSnapshot, SessionInfo
from voxelcraft.stellar.validation import require_account

log = logging.getLogger(__name__)

INVALIDATED_ACCOUNT = "account_changed"
INVALIDATED_NETWORK = "network_changed"
INVALIDATED_DISCONNECT = "disconnected"

# Called with one of the INVALIDATED_* reasons; may return a coroutine
InvalidationCallback = Callable[[str], Any]


class WalletSession:
    """Owns the connection to one signing agent.

    States are Disconnected and Connected only. An account or network change
    reported by the agent drops the session back to Disconnected and emits a
    "session invalidated" notification; the caller decides when to reconnect.
    Construct exactly one per process and pass it by reference.
    """

    def __init__(
        self,
        agent: SigningAgent,
        ledger: LedgerReader,
        assets: Sequence[str] = DEFAULT_ASSETS,
    ) -> None:
        self._agent = agent
        self._ledger = ledger
        self._assets = tuple(a.upper() for a in assets)
        self._address: str | None = None
        self._network_id: str | None = None
        self._balances: BalanceSnapshot | None = None
        self._unregister: Callable[[], None] | None = None
        self._callbacks: list[InvalidationCallback] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._address is not None

    @property
    def assets(self) -> tuple[str, ...]:
        return self._assets

    def bind_ledger(self, ledger: LedgerReader) -> None:
        """Point balance reads at another network's contracts."""
        self._ledger = ledger

    async def connect(self) -> SessionInfo:
        """Ask the agent for access and register its change listeners.

        Raises OperationError(USER_REJECTED) or OperationError(INVALID_INPUT)
        when no agent is present. A balance read failure does not fail the
        connection; the snapshot is simply empty.
        """
        if self.connected:
            return self._info()

        address = await self._agent.connect()
        network_id = await self._agent.network_id()
        self._unregister = self._agent.on_change(self._on_agent_change)
        self._address = address
        self._network_id = network_id
        log.info("Wallet session connected: %s", address[:16])

        try:
            self._balances = await self.balances(address)
        except OperationError as exc:
            log.warning("Initial balance read failed for %s: %s", address[:16], exc)
            self._balances = BalanceSnapshot(address=address)
        return self._info()

    async def disconnect(self) -> None:
        """Release the agent. Always succeeds."""
        was_connected = self.connected
        self._drop()
        try:
            await self._agent.disconnect()
        except Exception as exc:
            log.warning("Signing agent disconnect failed: %s", exc)
        if was_connected:
            log.info("Wallet session disconnected")
            self._emit(INVALIDATED_DISCONNECT)

    def current_address(self) -> str | None:
        return self._address

    def current_network_id(self) -> str | None:
        return self._network_id

    def require_address(self) -> str:
        if self._address is None:
            raise invalid_input("wallet is not connected")
        return self._address

    async def balances(self, address: str) -> BalanceSnapshot:
        """Fungible balances of ``address`` for the configured asset set."""
        require_account(address)
        snapshot = BalanceSnapshot(address=address)
        for asset in self._assets:
            snapshot.balances[asset] = await self._ledger.fungible_balance(asset, address)
        snapshot.native = await self._ledger.native_balance(address)
        if address == self._address:
            self._balances = snapshot
        return snapshot

    def cached_balances(self) -> BalanceSnapshot | None:
        return self._balances

    async def sign_message(self, text: str) -> str:
        self.require_address()
        return await self._agent.sign_message(text)

    async def switch_network(self, network_id: str) -> bool:
        """Request a network switch. A successful switch invalidates the session."""
        self.require_address()
        return await self._agent.switch_network(network_id)

    async def authorize(self, purpose: str) -> Keypair:
        """Obtain a signer for one ledger call. No timeout applies here."""
        self.require_address()
        return await self._agent.authorize(purpose)

    def on_invalidated(self, callback: InvalidationCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    # -- internals -------------------------------------------------------

    def _info(self) -> SessionInfo:
        assert self._address is not None and self._network_id is not None
        return SessionInfo(
            address=self._address,
            network_id=self._network_id,
            balances=self._balances or BalanceSnapshot(address=self._address),
        )

    def _drop(self) -> None:
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
        self._address = None
        self._network_id = None
        self._balances = None

    def _on_agent_change(self, what: str, value: str | None) -> None:
        if not self.connected:
            return
        reason = INVALIDATED_NETWORK if what == "network" else INVALIDATED_ACCOUNT
        log.info("Wallet session invalidated (%s)", reason)
        self._drop()
        self._emit(reason)

    def _emit(self, reason: str) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(reason)
            except Exception as exc:
                log.error("Session invalidation callback failed: %s", exc)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.get_running_loop().create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
