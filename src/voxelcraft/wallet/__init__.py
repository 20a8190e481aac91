"""Wallet session and the shipped keypair signing agent."""

from voxelcraft.wallet.agent import KeypairSigningAgent
from voxelcraft.wallet.session import WalletSession

__all__ = ["KeypairSigningAgent", "WalletSession"]
