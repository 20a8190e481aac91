"""ArtifactStore protocol - content-addressed uploads, pinning and fetches."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from voxelcraft.models.records import ArtifactBundle, ContentArtifact

# (bytes_transferred, total_bytes)
ProgressSink = Callable[[int, int], None]


class ArtifactStore(Protocol):
    """Uploads payloads to a content-addressed store."""

    async def upload_binary(
        self,
        data: bytes,
        progress: ProgressSink | None = None,
        name: str | None = None,
    ) -> ContentArtifact:
        """Upload raw bytes. Raises OperationError on failure."""
        ...

    async def upload_json(self, value: Any, name: str | None = None) -> ContentArtifact:
        ...

    async def upload_artifact_bundle(
        self,
        image: bytes,
        metadata_template: dict,
        progress: ProgressSink | None = None,
        image_name: str = "image",
    ) -> ArtifactBundle:
        """Upload image, embed its URL in the metadata, upload the metadata."""
        ...

    async def pin(self, content_hash: str) -> bool:
        """Best-effort durability. Never raises."""
        ...

    async def unpin(self, content_hash: str) -> bool:
        ...

    async def fetch(self, content_hash: str) -> bytes:
        """Original bytes. Raises OperationError (not found / unreachable)."""
        ...

    async def fetch_json(self, content_hash: str) -> Any:
        ...

    async def is_available(self) -> bool:
        ...

    def gateway_url(self, content_hash: str) -> str:
        ...
