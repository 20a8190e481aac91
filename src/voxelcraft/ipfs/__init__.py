"""Content-addressed artifact stores (Kubo node or Pinata)."""

from __future__ import annotations

import httpx

from voxelcraft.ipfs.kubo import KuboArtifactStore
from voxelcraft.ipfs.metadata import metadata_errors, validate_metadata
from voxelcraft.ipfs.pinata import PinataArtifactStore
from voxelcraft.models.config import StoreConfig, StoreProvider


def make_artifact_store(
    config: StoreConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> KuboArtifactStore | PinataArtifactStore:
    """Build the store selected by configuration."""
    if config.provider == StoreProvider.PINATA:
        return PinataArtifactStore(
            api_key=config.pinata_api_key,
            secret_key=config.pinata_secret_key,
            api_url=config.pinata_api_url,
            gateway_url=config.gateway_url,
            timeout=config.timeout,
            transport=transport,
        )
    return KuboArtifactStore(
        kubo_rpc_url=config.kubo_rpc_url,
        gateway_url=config.gateway_url,
        timeout=config.timeout,
        transport=transport,
    )


__all__ = [
    "KuboArtifactStore",
    "PinataArtifactStore",
    "make_artifact_store",
    "metadata_errors",
    "validate_metadata",
]
