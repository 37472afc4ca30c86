"""Local/remote synchronization package."""

from src.sync.coordinator import SyncCoordinator
from src.sync.state_slice import StateSlice

__all__ = ["StateSlice", "SyncCoordinator"]
