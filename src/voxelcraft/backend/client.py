"""HTTP client for the backend of record.

Every endpoint answers with an envelope ``{"success": bool, "data"?, "error"?}``.
Transport failures and timeouts become NETWORK_UNAVAILABLE; a non-success
envelope becomes UPSTREAM_FAILURE carrying the backend's error string verbatim.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from voxelcraft.models.errors import OperationError, network_unavailable, upstream_failure

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds


class HttpBackendClient:
    """Envelope-aware REST client built on one shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        auth_token: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Accept": "application/json"}
        if auth_token:
            self._headers["Authorization"] = f"Bearer {auth_token}"
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(
        self, path: str, body: dict | None = None, idempotency_key: str | None = None,
    ) -> Any:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        return await self._request("POST", path, json=body or {}, headers=headers)

    async def status(self) -> dict | None:
        try:
            status = await self.get("/system/status")
        except OperationError as exc:
            log.warning("Backend status check failed: %s", exc)
            return None
        return status if isinstance(status, dict) else None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = "/" + path.lstrip("/")
        try:
            resp = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            log.warning("%s %s timed out after %.0fs", method, url, self._timeout)
            raise network_unavailable(f"{method} {url} timed out") from None
        except httpx.TransportError as exc:
            log.warning("%s %s failed: %s", method, url, exc)
            raise network_unavailable(f"{method} {url}: backend unreachable") from None

        try:
            envelope = resp.json()
        except ValueError:
            raise upstream_failure(
                f"{method} {url}: HTTP {resp.status_code}, response is not JSON",
            ) from None

        if not isinstance(envelope, dict) or "success" not in envelope:
            raise upstream_failure(f"{method} {url}: malformed response envelope")
        if not envelope["success"]:
            error = envelope.get("error") or f"HTTP {resp.status_code}"
            log.info("%s %s rejected: %s", method, url, error)
            raise upstream_failure(str(error))
        return envelope.get("data")
