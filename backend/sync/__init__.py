"""
Background synchronization of the wiki content with the master repository.

This module provides:
- SyncManager: startup sync plus a periodic background pull
- SyncState: idle/syncing state of the loop
"""

from .manager import SyncManager, SyncState

__all__ = [
    'SyncManager',
    'SyncState',
]
