"""
Snapshot sources: where peer snapshots are fetched from.

A source publishes a manifest listing snapshot file names plus one
SQLite image per name:

    <root>/manifest.json        {"files": ["alice.sqlite", "bob.sqlite"]}
    <root>/alice.sqlite
    <root>/bob.sqlite

Sources only move bytes; they raise their own exceptions and leave the
mapping to SyncError reasons to SnapshotSync.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "manifest.json"


class SnapshotManifest(BaseModel):
    """Ordered list of snapshot file names."""

    files: list[str]


@runtime_checkable
class SnapshotSource(Protocol):
    """Protocol every snapshot source implements."""

    async def fetch_manifest(self) -> list[str]:
        """Return snapshot file names in import order."""
        ...

    async def fetch_file(self, name: str) -> bytes:
        """Return the raw image of one snapshot file."""
        ...


class HttpSnapshotSource:
    """Fetches snapshots published under an HTTP base URL.

    Example:
        >>> source = HttpSnapshotSource("https://example.org/data/annotations")
        >>> names = await source.fetch_manifest()
    """

    def __init__(
        self,
        base_url: str,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            base_url: URL of the directory holding manifest and snapshots
            manifest_name: Manifest file name
            timeout: Request timeout in seconds
            client: Optional shared client (its base_url is used as-is)
        """
        self.base_url = base_url
        self.manifest_name = manifest_name
        self.timeout = timeout
        self._client = client

    async def _get(self, name: str) -> bytes:
        if self._client is not None:
            response = await self._client.get(name)
            response.raise_for_status()
            return response.content

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            response = await client.get(name)
            response.raise_for_status()
            return response.content

    async def fetch_manifest(self) -> list[str]:
        content = await self._get(self.manifest_name)
        manifest = SnapshotManifest.model_validate_json(content)
        logger.debug("Fetched manifest", extra={"url": self.base_url, "files": len(manifest.files)})
        return manifest.files

    async def fetch_file(self, name: str) -> bytes:
        return await self._get(name)


class DirectorySnapshotSource:
    """Reads snapshots from a local directory (e.g. a git checkout)."""

    def __init__(self, directory: str | Path, manifest_name: str = DEFAULT_MANIFEST_NAME) -> None:
        self.directory = Path(directory)
        self.manifest_name = manifest_name

    def _path(self, name: str) -> Path:
        path = (self.directory / name).resolve()
        if path.parent != self.directory.resolve():
            raise ValueError(f"Snapshot name escapes the source directory: {name}")
        return path

    async def fetch_manifest(self) -> list[str]:
        content = await asyncio.to_thread(self._path(self.manifest_name).read_bytes)
        return SnapshotManifest.model_validate_json(content).files

    async def fetch_file(self, name: str) -> bytes:
        return await asyncio.to_thread(self._path(name).read_bytes)
