"""Backend-of-record REST client."""

from voxelcraft.backend.client import HttpBackendClient

__all__ = ["HttpBackendClient"]
