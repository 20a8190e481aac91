"""Soroban log source - polls RPC getEvents for the tracked contracts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from stellar_sdk import Address, SorobanServerAsync, scval, xdr
from stellar_sdk.exceptions import BaseRequestError
from stellar_sdk.exceptions import ConnectionError as SdkConnectionError
from stellar_sdk.soroban_rpc import EventFilter, EventFilterType, EventInfo, GetTransactionStatus

from voxelcraft.models.errors import network_unavailable, upstream_failure
from voxelcraft.models.events import RawLog

log = logging.getLogger(__name__)

# RPC limits: at most 5 contract ids per filter and 5 filters per request
_IDS_PER_FILTER = 5
_MAX_FILTERS = 5
_PAGE_LIMIT = 100


def _native(value: Any) -> Any:
    if isinstance(value, Address):
        return value.address
    if isinstance(value, list):
        return [_native(v) for v in value]
    if isinstance(value, dict):
        return {_native(k): _native(v) for k, v in value.items()}
    return value


def _decode(value_xdr: str | xdr.SCVal) -> Any:
    if isinstance(value_xdr, str):
        value_xdr = xdr.SCVal.from_xdr(value_xdr)
    return _native(scval.to_native(value_xdr))


def to_raw_log(info: EventInfo) -> RawLog | None:
    """Decode an RPC EventInfo into a RawLog. None if the XDR is malformed."""
    try:
        topics = tuple(_decode(t) for t in info.topic)
        data = _decode(info.value)
    except Exception as exc:
        log.warning("Could not decode event %s: %s", info.id, exc)
        return None
    return RawLog(
        contract_id=info.contract_id or "",
        topics=topics,
        data=data,
        ledger=info.ledger,
        tx_hash=info.transaction_hash or "",
        event_id=info.id,
    )


class SorobanLogSource:
    """Polls Soroban RPC for events of a set of contracts.

    Soroban RPC has no push channel, so the "subscription" is a cursor over
    ``getEvents``. The cursor (an event id) is exposed for persistence so a
    restart resumes where the last poll stopped.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        start_ledger: int | None = None,
        server: Any | None = None,
        timeout: float = 30.0,
    ) -> None:
        if server is None and rpc_url is None:
            raise ValueError("either rpc_url or server is required")
        self._server = server if server is not None else SorobanServerAsync(rpc_url)
        self._start_ledger = start_ledger
        self._timeout = timeout
        self._cursor: str | None = None
        self._filters: list[EventFilter] = []

    @property
    def cursor(self) -> str | None:
        return self._cursor

    def set_cursor(self, cursor: str | None) -> None:
        """Restore cursor from persisted state."""
        self._cursor = cursor

    def watch(self, contract_ids: Sequence[str]) -> None:
        ids = list(dict.fromkeys(contract_ids))
        limit = _IDS_PER_FILTER * _MAX_FILTERS
        if len(ids) > limit:
            log.warning("Watching only the first %d of %d contracts", limit, len(ids))
            ids = ids[:limit]
        self._filters = [
            EventFilter(
                event_type=EventFilterType.CONTRACT,
                contract_ids=ids[i:i + _IDS_PER_FILTER],
            )
            for i in range(0, len(ids), _IDS_PER_FILTER)
        ]

    async def poll(self) -> list[RawLog]:
        """Fetch new logs since the last cursor.

        On first call (no cursor), starts at ``start_ledger`` or the latest
        ledger reported by RPC.
        """
        if not self._filters:
            return []

        if self._cursor:
            response = await self._get_events(
                filters=self._filters, cursor=self._cursor, limit=_PAGE_LIMIT,
            )
        else:
            start = self._start_ledger
            if start is None:
                latest = await self._call(self._server.get_latest_ledger())
                start = latest.sequence
                log.info("No cursor, starting from latest ledger %d", start)
            response = await self._get_events(
                start_ledger=start, filters=self._filters, limit=_PAGE_LIMIT,
            )

        logs = self._convert(response.events)

        if response.events:
            self._cursor = response.events[-1].id
        elif getattr(response, "cursor", None):
            self._cursor = response.cursor

        if logs:
            log.info("Polled %d logs (cursor: %s)", len(logs), self._cursor)
        return logs

    async def logs_for_transaction(self, tx_hash: str) -> list[RawLog]:
        """Every successful contract log emitted by one transaction."""
        tx = await self._call(self._server.get_transaction(tx_hash))
        if tx.status == GetTransactionStatus.NOT_FOUND or tx.ledger is None:
            log.info("Transaction %s not found", tx_hash[:16])
            return []
        everything = [EventFilter(event_type=EventFilterType.CONTRACT)]
        found = await self._scan(everything, tx.ledger, tx.ledger)
        return [entry for entry in found if entry.tx_hash == tx_hash]

    async def logs_in_range(
        self, contract_id: str, from_ledger: int, to_ledger: int,
    ) -> list[RawLog]:
        if to_ledger < from_ledger:
            return []
        filters = [EventFilter(event_type=EventFilterType.CONTRACT, contract_ids=[contract_id])]
        return await self._scan(filters, from_ledger, to_ledger)

    async def close(self) -> None:
        try:
            await self._server.close()
        except Exception as exc:
            log.debug("Closing RPC server failed: %s", exc)

    # -- internals -------------------------------------------------------

    async def _scan(
        self, filters: list[EventFilter], from_ledger: int, to_ledger: int,
    ) -> list[RawLog]:
        """Page through getEvents from ``from_ledger`` until past ``to_ledger``."""
        collected: list[RawLog] = []
        response = await self._get_events(
            start_ledger=from_ledger, filters=filters, limit=_PAGE_LIMIT,
        )
        while True:
            in_range = [e for e in response.events if e.ledger <= to_ledger]
            collected.extend(self._convert(in_range))
            if len(in_range) < len(response.events) or len(response.events) < _PAGE_LIMIT:
                return collected
            response = await self._get_events(
                filters=filters, cursor=response.events[-1].id, limit=_PAGE_LIMIT,
            )

    def _convert(self, events: list[EventInfo]) -> list[RawLog]:
        logs: list[RawLog] = []
        for info in events:
            if not getattr(info, "in_successful_contract_call", True):
                continue
            raw = to_raw_log(info)
            if raw is not None:
                logs.append(raw)
        return logs

    async def _get_events(self, **kwargs: Any) -> Any:
        return await self._call(self._server.get_events(**kwargs))

    async def _call(self, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise network_unavailable(f"RPC call timed out after {self._timeout:.0f}s") from None
        except (SdkConnectionError, OSError) as exc:
            raise network_unavailable(f"RPC unreachable ({exc})") from None
        except BaseRequestError as exc:
            log.error("Event query failed: %s", exc)
            raise upstream_failure(f"RPC rejected event query: {exc}") from None
