"""Mailbox synchronization: engine and per-mailbox coordinator."""

from meetwatch.sync.coordinator import SyncCoordinator
from meetwatch.sync.engine import SyncEngine

__all__ = ["SyncCoordinator", "SyncEngine"]
