"""VoxelCraft ledger, content store and backend coordination."""

__version__ = "0.1.0"
