"""
TagStore - wires the storage worker, repositories, services and sync
engine together.

There is no global instance: callers build a TagStore and pass it (or
its services) to whoever needs them.

Example:
    >>> async with TagStore.open(Settings(data_dir="/tmp/tags")) as store:
    ...     tag = await store.tags.create_tag("Faith")
    ...     await store.annotations.create_annotation(tag.id, ["gen.1.1.1"])
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .config import Settings
from .repositories import AnnotationRepository, TagRepository, TagStyleRepository
from .services import AnnotationService, TagService
from .storage import StorageGateway, StorageWorker
from .sync import SnapshotSync

logger = logging.getLogger(__name__)


class TagStore:
    """Composition root for one tag database.

    Attributes:
        settings: Configuration
        gateway: Storage gateway (owns the worker)
        tags: Tag service
        annotations: Annotation service
        sync: Snapshot sync engine
    """

    def __init__(self, settings: Settings, gateway: StorageGateway) -> None:
        self.settings = settings
        self.gateway = gateway

        tag_repo = TagRepository(gateway)
        annotation_repo = AnnotationRepository(gateway)
        style_repo = TagStyleRepository(gateway)

        self.tags = TagService(
            gateway, tag_repo, annotation_repo, style_repo, user_id=settings.user_id
        )
        self.annotations = AnnotationService(
            annotation_repo, tag_repo, user_id=settings.user_id
        )
        self.sync = SnapshotSync(gateway)

    @classmethod
    def create(cls, settings: Settings) -> TagStore:
        """Build a store backed by a new storage worker (not started)."""
        worker = StorageWorker(
            settings.db_path,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_size_pages=settings.cache_size_pages,
        )
        gateway = StorageGateway(worker, call_timeout=settings.call_timeout_seconds)
        return cls(settings, gateway)

    @classmethod
    @asynccontextmanager
    async def open(cls, settings: Settings | None = None) -> AsyncIterator[TagStore]:
        """Start a store for the duration of the context."""
        store = cls.create(settings or Settings())
        await store.start()
        try:
            yield store
        finally:
            await store.close()

    async def start(self) -> None:
        await self.gateway.start()
        logger.info("Tag store ready", extra={"db_path": str(self.settings.db_path)})

    async def close(self) -> None:
        await self.gateway.close()

    async def stats(self) -> dict[str, int]:
        """Row counts per table."""
        rows = await self.gateway.query(
            """
            SELECT
                (SELECT COUNT(*) FROM tags) AS tags,
                (SELECT COUNT(*) FROM annotations) AS annotations,
                (SELECT COUNT(*) FROM tag_styles) AS tag_styles
            """
        )
        return dict(rows[0])
