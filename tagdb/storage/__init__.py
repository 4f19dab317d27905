"""
Storage module for TagDB - the single-writer execution boundary.

This module handles:
- The storage worker thread that owns the only SQLite connection
- The asyncio gateway multiplexing calls onto the worker
- Row models checked on read, on write and on snapshot import
- Whole-database snapshot export and strategy-driven import

Invariants:
    - Only StorageWorker opens the database file
    - Operations are applied one at a time, in arrival order
    - Multi-statement writes and imports are all-or-nothing

How to change safely:
    - Test schema changes against snapshots produced by older peers
    - Use transactions for all multi-statement operations
"""

from .gateway import Statement, StorageGateway, WorkerChannel
from .snapshot import SnapshotImage, SnapshotImportError
from .worker import StorageWorker, WorkerRequest, WorkerResponse

__all__ = [
    "StorageGateway",
    "Statement",
    "WorkerChannel",
    "StorageWorker",
    "WorkerRequest",
    "WorkerResponse",
    "SnapshotImage",
    "SnapshotImportError",
]
