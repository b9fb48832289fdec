"""
Batch synchronization with the remote aggregation service.
"""

from .client import CloudClient
from .engine import BatchStatistics, SyncEngine, SyncOutcome, SyncResult, SyncState

__all__ = [
    "BatchStatistics",
    "CloudClient",
    "SyncEngine",
    "SyncOutcome",
    "SyncResult",
    "SyncState",
]
