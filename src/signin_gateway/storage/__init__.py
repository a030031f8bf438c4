"""
Local Storage for the Sign-in Gateway
======================================
SQLite-backed state shared by the gateway and the background sync worker:
- Durable check-in queue
- Versioned static asset cache
- Deferred-retry intents
"""

from .models import PendingCheckin, CachedAsset, SyncIntent, QueueEntry
from .store import LocalStore, StorageError, StorageUnavailableError
from .queue import CheckinQueue, QueueWriteError
from .cache import AssetCache, cache_namespace
from .intents import SyncIntentStore

__all__ = [
    'PendingCheckin',
    'CachedAsset',
    'SyncIntent',
    'QueueEntry',
    'LocalStore',
    'StorageError',
    'StorageUnavailableError',
    'CheckinQueue',
    'QueueWriteError',
    'AssetCache',
    'cache_namespace',
    'SyncIntentStore'
]
