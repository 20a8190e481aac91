"""Kubo artifact store - uploads, pins and fetches via the Kubo HTTP RPC."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from voxelcraft.interfaces.artifact_store import ProgressSink
from voxelcraft.ipfs.base import BaseArtifactStore, MultipartUpload, encode_json, http_error
from voxelcraft.models.errors import upstream_failure
from voxelcraft.models.records import ContentArtifact

log = logging.getLogger(__name__)


class KuboArtifactStore(BaseArtifactStore):
    """Content store backed by a locally-run Kubo node.

    Uses the Kubo HTTP RPC API at /api/v0/ for:
    - add: upload bytes (pinned on add)
    - cat: read content back by hash
    - pin/add, pin/rm: durability toggles
    """

    def __init__(
        self,
        kubo_rpc_url: str = "http://127.0.0.1:5001",
        gateway_url: str = "https://ipfs.io",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(gateway_url, timeout, transport)
        self._base_url = kubo_rpc_url.rstrip("/")

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/v0/{endpoint}"

    async def upload_binary(
        self,
        data: bytes,
        progress: ProgressSink | None = None,
        name: str | None = None,
    ) -> ContentArtifact:
        start = time.monotonic()
        body = MultipartUpload(data, name or "data", progress=progress)
        try:
            async with self._http() as client:
                resp = await client.post(
                    self._url("add"),
                    params={"pin": "true", "cid-version": "1"},
                    content=body.stream(),
                    headers=body.headers,
                )
                resp.raise_for_status()
                added = resp.json()
        except httpx.HTTPError as exc:
            log.error("Kubo add failed (%d bytes): %s", len(data), exc)
            raise http_error(exc, "upload") from None

        content_hash = added.get("Hash", "")
        if not content_hash:
            raise upstream_failure("upload: Kubo returned no hash")
        duration = int((time.monotonic() - start) * 1000)
        log.info("Added %s (%d bytes) in %dms", content_hash[:16], len(data), duration)
        return self._artifact(content_hash, len(data), pinned=True)

    async def upload_json(self, value: Any, name: str | None = None) -> ContentArtifact:
        return await self.upload_binary(encode_json(value), name=name or "data.json")

    async def fetch(self, content_hash: str) -> bytes:
        try:
            async with self._http() as client:
                resp = await client.post(self._url("cat"), params={"arg": content_hash})
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            log.warning("Kubo cat failed for %s: %s", content_hash[:16], exc)
            raise http_error(exc, "fetch") from None

    async def pin(self, content_hash: str) -> bool:
        """Pin locally. Failures are logged, never raised."""
        try:
            async with self._http(timeout=30) as client:
                resp = await client.post(self._url("pin/add"), params={"arg": content_hash})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.error("Pin failed for %s: %s", content_hash[:16], exc)
            return False
        log.info("Pinned %s", content_hash[:16])
        return True

    async def unpin(self, content_hash: str) -> bool:
        """Release a snapshot or artifact from the node. Already-released counts as done."""
        try:
            async with self._http(timeout=30) as client:
                resp = await client.post(self._url("pin/rm"), params={"arg": content_hash})
        except httpx.HTTPError as exc:
            log.error("Kubo pin/rm for %s unreachable: %s", content_hash[:16], exc)
            return False

        released = resp.status_code == 200 or "not pinned" in resp.text.lower()
        if released:
            log.info("Artifact %s released from Kubo", content_hash[:16])
        else:
            log.warning(
                "Kubo refused to release %s (HTTP %d): %s",
                content_hash[:16], resp.status_code, resp.text[:200],
            )
        return released

    async def is_available(self) -> bool:
        try:
            async with self._http(timeout=10) as client:
                resp = await client.post(self._url("version"))
                return resp.status_code == 200
        except httpx.HTTPError as exc:
            log.warning("Kubo node unreachable: %s", exc)
            return False
