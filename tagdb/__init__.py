"""
TagDB - local persistence and snapshot sync for word-level annotations.

This package stores user-created tags and annotations over scripture
tokens in a single SQLite file and reconciles copies of that file
between devices and users.

Architecture:
    ┌──────────────┐   ┌──────────────┐   ┌────────────────┐   ┌──────────────┐
    │ TagService   │──▶│ Repositories │──▶│ StorageGateway │──▶│ StorageWorker│──▶ SQLite
    │ Annotation-  │   │ (row mapping)│   │ (correlation   │   │ (one thread, │
    │ Service      │   └──────────────┘   │  ids, futures) │   │  one handle) │
    └──────────────┘                      └───────▲────────┘   └──────────────┘
                                                  │
                                          ┌───────┴────────┐
                                          │ SnapshotSync   │◀── manifest + peer .sqlite files
                                          └────────────────┘

Invariants:
    - Only the storage worker touches the database file
    - Business rules are checked before any row is written
    - Cascading deletes and multi-file imports are atomic
    - Annotation merges are arbitrated by the per-record version

Version: see VERSION file at project root.
"""

from ._version import __version__

__all__ = ["__version__"]
