"""Shared plumbing for the content-addressed store clients."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, AsyncIterator

import httpx

from voxelcraft.interfaces.artifact_store import ProgressSink
from voxelcraft.ipfs.metadata import build_metadata_document, validate_metadata
from voxelcraft.models.errors import (
    ErrorKind,
    OperationError,
    network_unavailable,
    stale_state,
    upstream_failure,
)
from voxelcraft.models.records import ArtifactBundle, ContentArtifact

log = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024


def encode_json(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class MultipartUpload:
    """A single-file multipart body streamed in chunks with progress.

    The progress sink sees payload bytes only (not the multipart framing),
    strictly increasing, ending at ``(total, total)``.
    """

    def __init__(
        self,
        data: bytes,
        filename: str,
        fields: dict[str, str] | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.boundary = uuid.uuid4().hex
        self._data = data
        self._progress = progress

        head = b""
        for name, value in (fields or {}).items():
            head += (
                f"--{self.boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode("utf-8")
        head += (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode("utf-8")
        self._head = head
        self._tail = f"\r\n--{self.boundary}--\r\n".encode("utf-8")

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": f"multipart/form-data; boundary={self.boundary}",
            "Content-Length": str(len(self._head) + len(self._data) + len(self._tail)),
        }

    async def stream(self) -> AsyncIterator[bytes]:
        total = len(self._data)
        yield self._head
        sent = 0
        while sent < total:
            chunk = self._data[sent:sent + CHUNK_SIZE]
            yield chunk
            sent += len(chunk)
            if self._progress is not None:
                self._progress(sent, total)
        if total == 0 and self._progress is not None:
            self._progress(0, 0)
        yield self._tail


def http_error(exc: httpx.HTTPError, action: str) -> OperationError:
    """Classify an httpx failure."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return network_unavailable(f"{action}: store unreachable ({exc.__class__.__name__})")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text[:200]
        if status == 404 or (status == 500 and "not found" in body.lower()):
            return stale_state(f"{action}: content not found")
        if status in (402, 413, 429):
            return upstream_failure(f"{action}: quota exceeded (HTTP {status})")
        return upstream_failure(f"{action}: HTTP {status} {body}".rstrip())
    return upstream_failure(f"{action}: {exc}")


class BaseArtifactStore:
    """Behaviour common to every store: JSON helpers, bundles, gateway URLs.

    Subclasses implement ``upload_binary``, ``upload_json``, ``pin``,
    ``unpin``, ``fetch`` and ``is_available``.
    """

    def __init__(
        self,
        gateway_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._gateway = gateway_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _http(self, timeout: float | None = None, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or self._timeout, connect=10),
            transport=self._transport,
            **kwargs,
        )

    def gateway_url(self, content_hash: str) -> str:
        return f"{self._gateway}/ipfs/{content_hash}"

    def _artifact(self, content_hash: str, size: int, pinned: bool) -> ContentArtifact:
        return ContentArtifact(
            hash=content_hash, url=self.gateway_url(content_hash), size=size, pinned=pinned,
        )

    async def fetch_json(self, content_hash: str) -> Any:
        data = await self.fetch(content_hash)  # type: ignore[attr-defined]
        try:
            return json.loads(data)
        except ValueError:
            raise OperationError(
                ErrorKind.UPSTREAM_FAILURE, f"content {content_hash[:16]} is not JSON",
            ) from None

    async def upload_artifact_bundle(
        self,
        image: bytes,
        metadata_template: dict,
        progress: ProgressSink | None = None,
        image_name: str = "image",
    ) -> ArtifactBundle:
        """Upload the image, embed its URL in the metadata, upload the metadata.

        The template is validated before anything is uploaded.
        """
        validate_metadata(metadata_template)
        image_artifact = await self.upload_binary(  # type: ignore[attr-defined]
            image, progress=progress, name=image_name,
        )
        document = build_metadata_document(metadata_template, image_artifact.url)
        name = str(metadata_template.get("name", "metadata"))
        metadata_artifact = await self.upload_json(  # type: ignore[attr-defined]
            document, name=f"{name}.json",
        )
        log.info(
            "Uploaded artifact bundle (image=%s, metadata=%s)",
            image_artifact.hash[:16], metadata_artifact.hash[:16],
        )
        return ArtifactBundle(
            image=image_artifact, metadata=metadata_artifact, metadata_document=document,
        )
