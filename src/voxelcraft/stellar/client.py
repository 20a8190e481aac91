"""Thin async wrapper over stellar_sdk's generic Soroban contract client.

Every contract call goes through ``SorobanContractCaller``: reads are
simulation-only and bounded by the call timeout, writes are signed, submitted
and awaited until the ledger reports inclusion. SDK exceptions are turned
into ``OperationError`` here so nothing above this module sees them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from stellar_sdk import Keypair, SorobanServerAsync, scval, xdr
from stellar_sdk.contract import ContractClientAsync
from stellar_sdk.contract.exceptions import (
    AssembledTransactionError,
    SimulationFailedError,
    TransactionFailedError,
    TransactionStillPendingError,
)
from stellar_sdk.exceptions import BaseRequestError

from voxelcraft.models.errors import ErrorKind, OperationError, network_unavailable

log = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 30.0  # seconds

# Substrings of contract error messages, checked in order (case-insensitive).
# Soroban token contracts report an underfunded balance as contract error #10.
_CLASSIFIERS: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.INSUFFICIENT_FUNDS, (
        "insufficient", "balance is not sufficient", "error(contract, #10)",
    )),
    (ErrorKind.STALE_STATE, (
        "listing not active", "listinginactive", "listing inactive",
        "not claimable", "already claimed", "already voted", "expired",
        "voting closed",
    )),
    (ErrorKind.NOT_OWNER, (
        "not owner", "notowner", "not the owner", "not token owner",
    )),
    (ErrorKind.INVALID_INPUT, (
        "invalid address", "negative amount", "invalid amount",
        "error(value, invalidinput)",
    )),
]


class ContractCallError(OperationError):
    """A failed contract call, with the transaction hash when one was sent."""

    def __init__(self, kind: ErrorKind, message: str, tx_hash: str | None = None) -> None:
        super().__init__(kind, message)
        self.tx_hash = tx_hash


def classify_contract_error(message: str) -> ErrorKind:
    """Map a contract error message to an error kind (UPSTREAM_FAILURE by default)."""
    lowered = message.lower()
    for kind, needles in _CLASSIFIERS:
        if any(n in lowered for n in needles):
            return kind
    return ErrorKind.UPSTREAM_FAILURE


def _sent_hash(exc: AssembledTransactionError) -> str | None:
    tx = getattr(exc, "assembled_transaction", None)
    response = getattr(tx, "send_transaction_response", None)
    return getattr(response, "hash", None) or None


def _to_native(value: xdr.SCVal) -> Any:
    return scval.to_native(value)


ClientFactory = Callable[[str], Any]


class SorobanContractCaller:
    """Invokes contract functions by name through ``ContractClientAsync``."""

    def __init__(
        self,
        rpc_url: str,
        network_passphrase: str,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        client_factory: ClientFactory | None = None,
        server: Any | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._network_passphrase = network_passphrase
        self._timeout = timeout
        self._factory = client_factory or self._default_client
        self._clients: dict[str, Any] = {}
        self._server = server

    @property
    def network_passphrase(self) -> str:
        return self._network_passphrase

    @property
    def timeout(self) -> float:
        return self._timeout

    def _default_client(self, contract_id: str) -> ContractClientAsync:
        return ContractClientAsync(
            contract_id=contract_id,
            rpc_url=self._rpc_url,
            network_passphrase=self._network_passphrase,
        )

    def _client(self, contract_id: str) -> Any:
        client = self._clients.get(contract_id)
        if client is None:
            client = self._factory(contract_id)
            self._clients[contract_id] = client
        return client

    @property
    def server(self) -> Any:
        if self._server is None:
            self._server = SorobanServerAsync(self._rpc_url)
        return self._server

    async def read(
        self, contract_id: str, function: str, parameters: Sequence[xdr.SCVal],
    ) -> Any:
        """Simulate a read-only call and return the decoded result."""
        try:
            tx = await asyncio.wait_for(
                self._client(contract_id).invoke(
                    function,
                    list(parameters),
                    parse_result_xdr_fn=_to_native,
                ),
                timeout=self._timeout,
            )
            return tx.result()
        except asyncio.TimeoutError:
            raise network_unavailable(
                f"{function} timed out after {self._timeout:.0f}s",
            ) from None
        except SimulationFailedError as exc:
            raise ContractCallError(classify_contract_error(str(exc)), f"{function}: {exc}") from None
        except AssembledTransactionError as exc:
            raise ContractCallError(ErrorKind.UPSTREAM_FAILURE, f"{function}: {exc}") from None
        except (BaseRequestError, OSError) as exc:
            raise network_unavailable(f"{function}: RPC unreachable ({exc})") from None

    async def write(
        self,
        contract_id: str,
        function: str,
        parameters: Sequence[xdr.SCVal],
        signer: Keypair,
    ) -> tuple[str, Any]:
        """Sign, submit and wait for inclusion. Returns (tx_hash, decoded result)."""
        log.info("Submitting %s on %s", function, contract_id[:12])
        tx = None
        try:
            tx = await self._client(contract_id).invoke(
                function,
                list(parameters),
                source=signer.public_key,
                signer=signer,
                parse_result_xdr_fn=_to_native,
            )
            value = await tx.sign_and_submit()
        except TransactionStillPendingError as exc:
            raise ContractCallError(
                ErrorKind.NETWORK_UNAVAILABLE,
                f"{function}: inclusion not confirmed in time",
                _sent_hash(exc),
            ) from None
        except (SimulationFailedError, TransactionFailedError) as exc:
            kind = classify_contract_error(str(exc))
            tx_hash = _sent_hash(exc)
            log.warning(
                "%s failed: %s (tx=%s)", function, kind.value, tx_hash[:16] if tx_hash else "?",
            )
            raise ContractCallError(kind, f"{function}: {exc}", tx_hash) from None
        except AssembledTransactionError as exc:
            raise ContractCallError(
                ErrorKind.UPSTREAM_FAILURE, f"{function}: {exc}", _sent_hash(exc),
            ) from None
        except (BaseRequestError, OSError, asyncio.TimeoutError) as exc:
            raise network_unavailable(f"{function}: RPC unreachable ({exc})") from None

        tx_hash = ""
        if tx.send_transaction_response:
            tx_hash = tx.send_transaction_response.hash
        log.info("%s included (tx=%s)", function, tx_hash[:16] if tx_hash else "?")
        return tx_hash, value

    async def latest_ledger(self) -> int:
        try:
            response = await asyncio.wait_for(
                self.server.get_latest_ledger(), timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise network_unavailable("latest ledger query timed out") from None
        except (BaseRequestError, OSError) as exc:
            raise network_unavailable(f"RPC unreachable ({exc})") from None
        return response.sequence

    async def close(self) -> None:
        """Close the underlying aiohttp sessions."""
        for client in self._clients.values():
            server = getattr(client, "server", None)
            if server is not None:
                try:
                    await server.close()
                except Exception as exc:
                    log.debug("Closing contract client failed: %s", exc)
        self._clients.clear()
        if self._server is not None:
            try:
                await self._server.close()
            except Exception as exc:
                log.debug("Closing RPC server failed: %s", exc)
