"""
Sync module for TagDB - file-based snapshot exchange between peers.

Invariants:
    - A multi-file import is all-or-nothing
    - Failures name the stage (manifest, file load, import, export)
      and, where known, the file
"""

from .engine import NamedSnapshot, SnapshotArtifact, SnapshotSync
from .sources import (
    DirectorySnapshotSource,
    HttpSnapshotSource,
    SnapshotManifest,
    SnapshotSource,
)

__all__ = [
    "SnapshotSync",
    "SnapshotArtifact",
    "NamedSnapshot",
    "SnapshotSource",
    "SnapshotManifest",
    "HttpSnapshotSource",
    "DirectorySnapshotSource",
]
