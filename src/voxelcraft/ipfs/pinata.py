"""Pinata artifact store - the managed pinning service API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from voxelcraft.interfaces.artifact_store import ProgressSink
from voxelcraft.ipfs.base import BaseArtifactStore, MultipartUpload, http_error
from voxelcraft.models.errors import invalid_input, upstream_failure
from voxelcraft.models.records import ContentArtifact

log = logging.getLogger(__name__)


class PinataArtifactStore(BaseArtifactStore):
    """Content store backed by Pinata; reads go through the gateway."""

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        api_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not secret_key:
            raise invalid_input("Pinata API key and secret are required")
        super().__init__(gateway_url, timeout, transport)
        self._api_url = api_url.rstrip("/")
        self._auth = {"pinata_api_key": api_key, "pinata_secret_api_key": secret_key}

    def _url(self, endpoint: str) -> str:
        return f"{self._api_url}/{endpoint}"

    @staticmethod
    def _artifact_from(resp: httpx.Response, size: int) -> tuple[str, int]:
        body = resp.json()
        content_hash = body.get("IpfsHash", "")
        if not content_hash:
            raise upstream_failure("upload: Pinata returned no hash")
        return content_hash, int(body.get("PinSize") or size)

    async def upload_binary(
        self,
        data: bytes,
        progress: ProgressSink | None = None,
        name: str | None = None,
    ) -> ContentArtifact:
        filename = name or "data"
        body = MultipartUpload(
            data,
            filename,
            fields={"pinataMetadata": json.dumps({"name": filename})},
            progress=progress,
        )
        try:
            async with self._http(headers=self._auth) as client:
                resp = await client.post(
                    self._url("pinning/pinFileToIPFS"),
                    content=body.stream(),
                    headers=body.headers,
                )
                resp.raise_for_status()
                content_hash, _ = self._artifact_from(resp, len(data))
        except httpx.HTTPError as exc:
            log.error("Pinata file upload failed (%d bytes): %s", len(data), exc)
            raise http_error(exc, "upload") from None
        log.info("Pinned file %s (%d bytes) on Pinata", content_hash[:16], len(data))
        return self._artifact(content_hash, len(data), pinned=True)

    async def upload_json(self, value: Any, name: str | None = None) -> ContentArtifact:
        payload = {
            "pinataContent": value,
            "pinataMetadata": {"name": name or "data.json"},
        }
        try:
            async with self._http(headers=self._auth) as client:
                resp = await client.post(self._url("pinning/pinJSONToIPFS"), json=payload)
                resp.raise_for_status()
                content_hash, size = self._artifact_from(resp, 0)
        except httpx.HTTPError as exc:
            log.error("Pinata JSON upload failed: %s", exc)
            raise http_error(exc, "upload") from None
        log.info("Pinned JSON %s on Pinata", content_hash[:16])
        return self._artifact(content_hash, size, pinned=True)

    async def fetch(self, content_hash: str) -> bytes:
        try:
            async with self._http(follow_redirects=True) as client:
                resp = await client.get(self.gateway_url(content_hash))
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            log.warning("Gateway fetch failed for %s: %s", content_hash[:16], exc)
            raise http_error(exc, "fetch") from None

    async def pin(self, content_hash: str) -> bool:
        try:
            async with self._http(timeout=30, headers=self._auth) as client:
                resp = await client.post(
                    self._url("pinning/pinByHash"), json={"hashToPin": content_hash},
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.error("Pinata pin failed for %s: %s", content_hash[:16], exc)
            return False
        log.info("Pinned %s on Pinata", content_hash[:16])
        return True

    async def unpin(self, content_hash: str) -> bool:
        try:
            async with self._http(timeout=30, headers=self._auth) as client:
                resp = await client.delete(self._url(f"pinning/unpin/{content_hash}"))
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.error("Pinata unpin failed for %s: %s", content_hash[:16], exc)
            return False
        log.info("Unpinned %s on Pinata", content_hash[:16])
        return True

    async def is_available(self) -> bool:
        try:
            async with self._http(timeout=10, headers=self._auth) as client:
                resp = await client.get(self._url("data/testAuthentication"))
                return resp.status_code == 200
        except httpx.HTTPError as exc:
            log.warning("Pinata unreachable: %s", exc)
            return False
