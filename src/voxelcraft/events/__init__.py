"""Ledger event synchronization."""

from voxelcraft.events.normalizer import DEFAULT_EVENTS, EVENT_TABLE, normalize
from voxelcraft.events.synchronizer import EventSynchronizer, Subscription

__all__ = ["DEFAULT_EVENTS", "EVENT_TABLE", "EventSynchronizer", "Subscription", "normalize"]
