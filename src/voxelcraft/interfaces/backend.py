"""BackendClient protocol - REST backend of record."""

from __future__ import annotations

from typing import Any, Protocol


class BackendClient(Protocol):
    """Envelope-aware REST client.

    Every response is ``{success, data?, error?}``; ``get``/``post`` return
    ``data`` and raise OperationError for transport failures (NETWORK_UNAVAILABLE)
    and non-success envelopes (UPSTREAM_FAILURE).
    """

    async def get(self, path: str, params: dict | None = None) -> Any:
        ...

    async def post(
        self, path: str, body: dict | None = None, idempotency_key: str | None = None,
    ) -> Any:
        ...

    async def status(self) -> dict | None:
        """The backend's status payload (``healthy``, ``lastSync``); None if unreachable."""
        ...

    async def close(self) -> None:
        ...
