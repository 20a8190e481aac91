"""EventSynchronizer - tracks contract events and fans them out.

Each decoded log from the log source is normalized, forwarded to the backend
of record (fire-and-forget), then dispatched in node order to the listeners
registered for its event type. Delivery is at-least-once: a rewound cursor
or a re-delivered ledger range produces duplicate events, so listeners must
be idempotent on ``(tx_hash, type, contract, args)``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from voxelcraft.events.normalizer import DEFAULT_EVENTS, family_events, normalize
from voxelcraft.interfaces.backend import BackendClient
from voxelcraft.interfaces.sync import LogSource, SyncStore
from voxelcraft.models.errors import invalid_input
from voxelcraft.models.events import EventType, NormalizedEvent, RawLog
from voxelcraft.stellar.contracts import ContractRegistry, TrackedContract

log = logging.getLogger(__name__)

# Listeners may be plain callables or coroutine functions
Listener = Callable[[NormalizedEvent], Any]


@dataclass(frozen=True)
class Subscription:
    """A live binding to one tracked contract."""

    contract: TrackedContract
    event_types: frozenset[EventType]


class EventSynchronizer:
    """Maintains contract bindings and listener registrations.

    All mutations of the binding and listener tables go through one
    ``asyncio.Lock``, so a reset (teardown plus rebuild) is atomic with
    respect to concurrent track/subscribe calls. Listeners survive a reset;
    ``shutdown`` clears both tables.
    """

    def __init__(
        self,
        source: LogSource,
        backend: BackendClient | None = None,
        store: SyncStore | None = None,
        poll_interval: float = 5,
        error_backoff: float = 30,
    ) -> None:
        self._source = source
        self._backend = backend
        self._store = store
        self._poll_interval = poll_interval
        self._error_backoff = error_backoff

        self._lock = asyncio.Lock()
        self._network: str | None = None
        self._registry: ContractRegistry | None = None
        self._bindings: dict[str, Subscription] = {}
        self._listeners: dict[EventType, list[Listener]] = {}
        self._forwards: set[asyncio.Task] = set()
        self._stop = asyncio.Event()
        self._running = False

    @property
    def network(self) -> str | None:
        return self._network

    @property
    def running(self) -> bool:
        return self._running

    def tracked(self) -> list[str]:
        return sorted(self._bindings)

    def listener_count(self, event_type: EventType | None = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(v) for v in self._listeners.values())

    # -- lifecycle -------------------------------------------------------

    async def start(self, network: str, registry: ContractRegistry) -> None:
        """Bind the default contract set of ``network`` and restore its cursor."""
        await self.reset(network, registry)
        log.info("Event synchronizer started on %s (%d contracts)", network, len(self._bindings))

    async def reset(
        self,
        network: str,
        registry: ContractRegistry,
        source: LogSource | None = None,
    ) -> None:
        """Tear down every binding and rebuild the default set.

        Called on reconnect and on network change. ``source`` replaces the
        log source when the new network has a different RPC endpoint.
        """
        async with self._lock:
            previous = self._network
            self._bindings.clear()
            self._source.watch([])
            if source is not None and source is not self._source:
                await self._source.close()
                self._source = source

            self._network = network
            self._registry = registry
            for contract in registry:
                self._bindings[contract.key] = Subscription(
                    contract=contract, event_types=DEFAULT_EVENTS[contract.family],
                )
            self._source.watch(self._watched())

            if previous != network or source is not None:
                cursor = await self._store.get_cursor(network) if self._store else None
                self._source.set_cursor(cursor)
                if cursor:
                    log.info("Resuming %s from cursor %s", network, cursor)
        log.info("Event bindings rebuilt for %s: %s", network, ", ".join(sorted(self._bindings)))

    async def shutdown(self) -> None:
        """Drop every binding and listener, stop polling, flush forwards."""
        self.stop()
        async with self._lock:
            self._bindings.clear()
            self._listeners.clear()
            self._source.watch([])
        await self.drain()
        log.info("Event synchronizer shut down")

    async def close(self) -> None:
        await self.shutdown()
        await self._source.close()

    # -- bindings --------------------------------------------------------

    async def track(self, key: str, event_types: Iterable[EventType] | None = None) -> bool:
        """Bind a configured contract. Returns False if it is not configured."""
        async with self._lock:
            contract = self._registry.get(key) if self._registry else None
            if contract is None:
                log.warning("Cannot track %s: no contract configured", key)
                return False
            allowed = family_events(contract.family)
            wanted = frozenset(event_types) & allowed if event_types else DEFAULT_EVENTS[contract.family]
            self._bindings[key] = Subscription(contract=contract, event_types=wanted)
            self._source.watch(self._watched())
        return True

    async def untrack(self, key: str) -> bool:
        async with self._lock:
            removed = self._bindings.pop(key, None) is not None
            if removed:
                self._source.watch(self._watched())
        return removed

    async def subscribe(self, event_type: EventType, listener: Listener) -> None:
        async with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    async def unsubscribe(self, event_type: EventType, listener: Listener) -> bool:
        async with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)
                return True
        return False

    def _watched(self) -> list[str]:
        return [s.contract.address for s in self._bindings.values()]

    # -- live feed -------------------------------------------------------

    async def handle_log(self, raw: RawLog) -> NormalizedEvent | None:
        """Normalize, forward and dispatch one log. Unbound contracts are skipped."""
        async with self._lock:
            binding = next(
                (s for s in self._bindings.values() if s.contract.address == raw.contract_id),
                None,
            )
            if binding is None:
                return None
            event = normalize(raw, binding.contract.family)
            if event is None or event.type not in binding.event_types:
                return None
            listeners = list(self._listeners.get(event.type, []))

        self._forward(event)
        for listener in listeners:
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                log.error("Listener for %s failed: %s", event.type.value, exc)
        return event

    async def poll_once(self) -> int:
        """Pull one batch of logs and push each through ``handle_log``."""
        logs = await self._source.poll()
        delivered = 0
        for raw in logs:
            if await self.handle_log(raw) is not None:
                delivered += 1
        cursor = self._source.cursor
        if self._store is not None and self._network and cursor:
            await self._store.set_cursor(
                self._network, cursor, logs[-1].ledger if logs else None,
            )
        return delivered

    async def run(self) -> None:
        """Poll until ``stop()`` is called. Errors back off, never escape."""
        self._running = True
        self._stop.clear()
        log.info("Event polling started (interval=%ss)", self._poll_interval)
        try:
            while not self._stop.is_set():
                delay = self._poll_interval
                try:
                    count = await self.poll_once()
                    if count:
                        log.info("Delivered %d events", count)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    log.error("Event poll failed: %s", exc)
                    await self._log_activity("sync_error", f"Event poll failed: {exc}")
                    delay = self._error_backoff
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            log.info("Event polling stopped")

    def stop(self) -> None:
        self._stop.set()

    # -- forwarding ------------------------------------------------------

    def _forward(self, event: NormalizedEvent) -> None:
        if self._backend is None:
            return
        task = asyncio.get_running_loop().create_task(self._post(event))
        self._forwards.add(task)
        task.add_done_callback(self._forwards.discard)

    async def _post(self, event: NormalizedEvent) -> None:
        try:
            await self._backend.post("/events/contract", event.to_payload())
        except Exception as exc:
            # Dropped: not retried, never surfaced to listeners
            log.warning(
                "Forwarding %s (tx=%s) failed: %s", event.type.value, event.tx_hash[:16], exc,
            )
            await self._log_activity(
                "forward_failed", f"{event.type.value}: {exc}", event.tx_hash,
            )

    async def drain(self) -> None:
        """Wait for in-flight backend forwards to settle."""
        if self._forwards:
            await asyncio.gather(*list(self._forwards), return_exceptions=True)

    async def _log_activity(self, event_type: str, message: str, tx_hash: str | None = None) -> None:
        if self._store is None:
            return
        try:
            await self._store.log_activity(event_type, message, tx_hash, self._network)
        except Exception as exc:
            log.debug("Activity log write failed: %s", exc)

    # -- historical queries ----------------------------------------------

    async def events_for_transaction(self, tx_hash: str) -> list[NormalizedEvent]:
        """Every recognizable event of one transaction.

        Logs are decoded with the interface of whichever configured contract
        emitted them; logs of unknown contracts are skipped.
        """
        registry = self._require_registry()
        events: list[NormalizedEvent] = []
        for raw in await self._source.logs_for_transaction(tx_hash):
            contract = registry.by_address(raw.contract_id)
            if contract is None:
                continue
            event = normalize(raw, contract.family)
            if event is not None:
                events.append(event)
        return events

    async def events_in_range(
        self,
        key: str,
        event_type: EventType | None,
        from_ledger: int,
        to_ledger: int,
    ) -> list[NormalizedEvent]:
        """Backfill/audit query over ``[from_ledger, to_ledger]`` for one contract."""
        contract = self._require_registry().require(key)
        events: list[NormalizedEvent] = []
        for raw in await self._source.logs_in_range(contract.address, from_ledger, to_ledger):
            event = normalize(raw, contract.family)
            if event is not None and (event_type is None or event.type == event_type):
                events.append(event)
        return events

    def _require_registry(self) -> ContractRegistry:
        if self._registry is None:
            raise invalid_input("event synchronizer has not been started")
        return self._registry
