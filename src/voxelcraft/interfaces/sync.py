"""Event source and sync-state protocols used by the EventSynchronizer."""

from __future__ import annotations

from typing import Protocol, Sequence

from voxelcraft.models.events import RawLog


class LogSource(Protocol):
    """Delivers decoded contract logs from the ledger node."""

    def watch(self, contract_ids: Sequence[str]) -> None:
        """Replace the set of contracts the live feed is filtered to."""
        ...

    async def poll(self) -> list[RawLog]:
        """Logs since the last cursor, in node order."""
        ...

    def set_cursor(self, cursor: str | None) -> None:
        ...

    @property
    def cursor(self) -> str | None:
        ...

    async def logs_for_transaction(self, tx_hash: str) -> list[RawLog]:
        """Every contract log emitted by one transaction."""
        ...

    async def logs_in_range(
        self, contract_id: str, from_ledger: int, to_ledger: int,
    ) -> list[RawLog]:
        ...

    async def close(self) -> None:
        ...


class SyncStore(Protocol):
    """Persists the sync cursor and an activity log."""

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def get_cursor(self, network: str) -> str | None:
        ...

    async def set_cursor(self, network: str, cursor: str, ledger: int | None = None) -> None:
        ...

    async def log_activity(
        self,
        event_type: str,
        message: str,
        tx_hash: str | None = None,
        network: str | None = None,
    ) -> None:
        ...
