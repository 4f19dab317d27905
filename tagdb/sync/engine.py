"""
Snapshot sync engine for TagDB.

SnapshotSync exchanges whole-database images with peers without any
network protocol of its own: the local store is exported as a SQLite
file, and peer files (listed by a manifest) are merged back in.

Import state machine for one call:

    fetch manifest ──> fetch every listed file ──> apply all in ONE transaction
         │                     │                            │
    MANIFEST_NOT_FOUND   FILE_LOAD_FAILED(name)       IMPORT_FAILED(name)

Strategy per file:
    replace        first file clears the tables, later files use merge
    merge          annotations keep the higher version, tags/styles
                   take the foreign row
    skip-existing  only ids absent locally are inserted

Invariants:
    - Nothing is written until every file has been fetched
    - A failing file rolls back the whole call
    - The engine never opens the database file; it goes through the
      gateway's export/import operations
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import StorageError, SyncError, SyncErrorReason
from ..models import MergeStrategy
from ..storage import SnapshotImage, StorageGateway
from .sources import SnapshotSource

logger = logging.getLogger(__name__)

SNAPSHOT_CONTENT_TYPE = "application/vnd.sqlite3"


@dataclass
class NamedSnapshot:
    """A snapshot image with the file name it was loaded from."""

    name: str
    data: bytes


@dataclass
class SnapshotArtifact:
    """An exported snapshot ready to hand to the user.

    Attributes:
        filename: Suggested file name
        data: SQLite image
        content_type: MIME type of the image
    """

    filename: str
    data: bytes
    content_type: str = SNAPSHOT_CONTENT_TYPE

    def write_to(self, directory: str | Path) -> Path:
        """Write the snapshot into a directory and return its path."""
        path = Path(directory) / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


def strategy_for(strategy: MergeStrategy, index: int) -> MergeStrategy:
    """Strategy applied to the index-th file of a multi-file import."""
    if strategy is MergeStrategy.REPLACE and index > 0:
        return MergeStrategy.MERGE
    return strategy


class SnapshotSync:
    """Exports and imports whole-store snapshots.

    Example:
        >>> sync = SnapshotSync(gateway)
        >>> artifact = await sync.export_to_snapshot("alice")
        >>> artifact.write_to("annotations/")
        >>> await sync.import_from_source(DirectorySnapshotSource("annotations/"), "merge")
    """

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    async def export_to_snapshot(self, user_id: str, filename: str | None = None) -> SnapshotArtifact:
        """Export the live store.

        Args:
            user_id: User the snapshot belongs to
            filename: File name, defaults to "<user_id>-annotations.sqlite"

        Raises:
            SyncError: EXPORT_FAILED
        """
        name = filename or f"{user_id}-annotations.sqlite"
        try:
            data = await self.gateway.export_snapshot()
        except StorageError as e:
            raise SyncError(
                SyncErrorReason.EXPORT_FAILED,
                f"Failed to export database: {e.message}",
                filename=name,
            ) from e

        logger.info("Exported snapshot", extra={"snapshot": name, "size_bytes": len(data)})
        return SnapshotArtifact(filename=name, data=data)

    async def import_snapshots(
        self,
        snapshots: Sequence[NamedSnapshot],
        strategy: MergeStrategy | str = MergeStrategy.MERGE,
    ) -> dict[str, int]:
        """Merge snapshots into the live store in one transaction.

        Args:
            snapshots: Snapshots in import order
            strategy: Merge strategy for the call

        Returns:
            Foreign row counts per table plus rows changed

        Raises:
            SyncError: IMPORT_FAILED naming the failing file
        """
        strategy = MergeStrategy(strategy)
        if not snapshots:
            return {}

        images = [
            SnapshotImage(data=snapshot.data, strategy=strategy_for(strategy, index))
            for index, snapshot in enumerate(snapshots)
        ]

        try:
            summary = await self.gateway.import_snapshots(images)
        except StorageError as e:
            index = e.details.get("index")
            filename = snapshots[index].name if index is not None else None
            target = f"database {filename}" if filename else "snapshots"
            raise SyncError(
                SyncErrorReason.IMPORT_FAILED,
                f"Failed to import {target}: {e.message}",
                filename=filename,
            ) from e

        logger.info(
            "Imported snapshots",
            extra={
                "files": [s.name for s in snapshots],
                "strategy": strategy.value,
                **summary,
            },
        )
        return summary

    async def import_from_source(
        self,
        source: SnapshotSource,
        strategy: MergeStrategy | str = MergeStrategy.MERGE,
    ) -> dict[str, int]:
        """Fetch every snapshot listed by a source's manifest and import them.

        Raises:
            SyncError: MANIFEST_NOT_FOUND, FILE_LOAD_FAILED or IMPORT_FAILED
        """
        strategy = MergeStrategy(strategy)
        try:
            names = await source.fetch_manifest()
        except Exception as e:
            raise SyncError(
                SyncErrorReason.MANIFEST_NOT_FOUND,
                f"Failed to load manifest: {e}",
            ) from e

        if not names:
            logger.info("Manifest lists no snapshots, nothing to import")
            return {}

        snapshots = []
        for name in names:
            try:
                data = await source.fetch_file(name)
            except Exception as e:
                raise SyncError(
                    SyncErrorReason.FILE_LOAD_FAILED,
                    f"Failed to load database file {name}: {e}",
                    filename=name,
                ) from e
            snapshots.append(NamedSnapshot(name=name, data=data))

        return await self.import_snapshots(snapshots, strategy)

    async def import_from_file(
        self,
        path: str | Path,
        strategy: MergeStrategy | str = MergeStrategy.MERGE,
    ) -> dict[str, int]:
        """Import a single snapshot file.

        Raises:
            SyncError: FILE_LOAD_FAILED or IMPORT_FAILED
        """
        return await self.import_from_files([path], strategy)

    async def import_from_files(
        self,
        paths: Sequence[str | Path],
        strategy: MergeStrategy | str = MergeStrategy.MERGE,
    ) -> dict[str, int]:
        """Read local snapshot files in order and import them in one call.

        Raises:
            SyncError: FILE_LOAD_FAILED naming the unreadable file, or IMPORT_FAILED
        """
        snapshots = []
        for path in map(Path, paths):
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise SyncError(
                    SyncErrorReason.FILE_LOAD_FAILED,
                    f"Failed to read file {path.name}: {e}",
                    filename=path.name,
                ) from e
            snapshots.append(NamedSnapshot(name=path.name, data=data))

        return await self.import_snapshots(snapshots, strategy)
