"""
Tag service - business rules for tags and their styles.

Invariants:
    - Tag names are non-empty after trimming and unique among live tags;
      the check and the write run under one lock per service
    - Renaming a tag to its own current name is allowed
    - Deleting a tag removes its annotations, its style and the tag in
      one transaction
    - StorageError never escapes; it is re-mapped to INVALID_DATA
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, replace
from typing import Any

from ..errors import StorageError, TagError, TagErrorReason
from ..models import StyleHints, Tag, TagMetadata, TagStyle
from ..repositories import AnnotationRepository, TagRepository, TagStyleRepository
from ..storage import StorageGateway

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except StorageError as e:
        raise TagError(TagErrorReason.INVALID_DATA, f"Database error: {e.message}") from e


def _not_found(tag_id: str) -> TagError:
    return TagError(TagErrorReason.NOT_FOUND, f'Tag with id "{tag_id}" not found', tag_id=tag_id)


class TagService:
    """Creates, updates and deletes tags.

    Example:
        >>> service = TagService(gateway, tags, annotations, styles, user_id="user-1")
        >>> tag = await service.create_tag("Covenant", category="themes")
        >>> await service.update_tag(tag.id, metadata=TagMetadata(color="#ffcc00"))
    """

    def __init__(
        self,
        gateway: StorageGateway,
        tags: TagRepository,
        annotations: AnnotationRepository,
        styles: TagStyleRepository,
        user_id: str = "default",
    ) -> None:
        """Initialize the service.

        Args:
            gateway: Storage gateway used for the delete cascade
            tags: Tag repository
            annotations: Annotation repository
            styles: Tag style repository
            user_id: Owner stamped on new tags
        """
        self.gateway = gateway
        self.tags = tags
        self.annotations = annotations
        self.styles = styles
        self.user_id = user_id

        # Serializes name check + write so concurrent callers cannot both pass
        self._name_lock = asyncio.Lock()

    async def _validate_name(
        self, name: str, tag_id: str | None = None, current_name: str | None = None
    ) -> str:
        trimmed = name.strip()
        if not trimmed:
            raise TagError(TagErrorReason.EMPTY_NAME, "Tag name cannot be empty", tag_id=tag_id)
        if trimmed == current_name:
            return trimmed

        existing = await self.tags.find_by_name(trimmed, exclude_id=tag_id)
        if existing is not None:
            raise TagError(
                TagErrorReason.DUPLICATE_NAME,
                f'Tag with name "{trimmed}" already exists',
                tag_id=existing.id,
            )
        return trimmed

    async def create_tag(
        self,
        name: str,
        category: str | None = None,
        metadata: TagMetadata | None = None,
        description: str | None = None,
    ) -> Tag:
        """Create a tag.

        Raises:
            TagError: EMPTY_NAME, DUPLICATE_NAME or INVALID_DATA
        """
        async with self._name_lock:
            with _storage_errors():
                trimmed = await self._validate_name(name)

                tag = Tag(
                    id=str(uuid.uuid4()),
                    name=trimmed,
                    description=description,
                    category=category,
                    metadata=metadata or TagMetadata(),
                    created_at=int(time.time() * 1000),
                    user_id=self.user_id,
                )
                await self.tags.save(tag)

        logger.info("Created tag", extra={"tag_id": tag.id, "tag_name": tag.name})
        return tag

    async def update_tag(
        self,
        tag_id: str,
        *,
        name: str = _UNSET,
        description: str | None = _UNSET,
        category: str | None = _UNSET,
        metadata: TagMetadata | None = None,
        color: str | None = _UNSET,
        icon: str | None = _UNSET,
        priority: int | None = _UNSET,
    ) -> Tag:
        """Update a tag in place.

        Omitted fields are kept. Metadata is merged: only its non-None
        fields replace the stored ones. color, icon and priority can also
        be passed on their own, where None clears the stored value.

        Raises:
            TagError: NOT_FOUND, EMPTY_NAME, DUPLICATE_NAME or INVALID_DATA
        """
        async with self._name_lock:
            with _storage_errors():
                existing = await self.tags.find_by_id(tag_id)
                if existing is None:
                    raise _not_found(tag_id)

                changes: dict[str, Any] = {}
                if name is not _UNSET:
                    changes["name"] = await self._validate_name(
                        name, tag_id=tag_id, current_name=existing.name
                    )
                if description is not _UNSET:
                    changes["description"] = description
                if category is not _UNSET:
                    changes["category"] = category

                overrides: dict[str, Any] = {}
                if metadata is not None:
                    overrides = {k: v for k, v in asdict(metadata).items() if v is not None}
                for field_name, value in (("color", color), ("icon", icon), ("priority", priority)):
                    if value is not _UNSET:
                        overrides[field_name] = value
                if overrides:
                    changes["metadata"] = replace(existing.metadata, **overrides)

                updated = replace(existing, **changes)
                await self.tags.save(updated)

        logger.info("Updated tag", extra={"tag_id": tag_id, "fields": sorted(changes)})
        return updated

    async def delete_tag(self, tag_id: str) -> None:
        """Delete a tag with its annotations and style.

        Raises:
            TagError: NOT_FOUND or INVALID_DATA
        """
        with _storage_errors():
            if await self.tags.find_by_id(tag_id) is None:
                raise _not_found(tag_id)

            await self.gateway.execute_batch(
                [
                    self.annotations.delete_by_tag_id_statement(tag_id),
                    self.styles.delete_statement(tag_id),
                    self.tags.delete_statement(tag_id),
                ]
            )

        logger.info("Deleted tag", extra={"tag_id": tag_id})

    async def get_tag(self, tag_id: str) -> Tag:
        with _storage_errors():
            tag = await self.tags.find_by_id(tag_id)
        if tag is None:
            raise _not_found(tag_id)
        return tag

    async def get_all_tags(self) -> list[Tag]:
        with _storage_errors():
            return await self.tags.get_all()

    async def get_tags_by_category(self, category: str) -> list[Tag]:
        with _storage_errors():
            return await self.tags.find_by_category(category)

    async def set_tag_style(
        self,
        tag_id: str,
        style: StyleHints,
        user_id: str | None = None,
    ) -> TagStyle:
        """Create or replace the style of a tag.

        Args:
            tag_id: Styled tag
            style: Rendering hints
            user_id: Owner for a user-scoped style, None for a global one

        Raises:
            TagError: NOT_FOUND or INVALID_DATA
        """
        with _storage_errors():
            if await self.tags.find_by_id(tag_id) is None:
                raise _not_found(tag_id)

            tag_style = TagStyle(tag_id=tag_id, user_id=user_id, style=style)
            await self.styles.save(tag_style)
        return tag_style

    async def get_tag_style(self, tag_id: str) -> TagStyle | None:
        with _storage_errors():
            return await self.styles.find_by_tag_id(tag_id)

    async def remove_tag_style(self, tag_id: str) -> None:
        with _storage_errors():
            await self.styles.delete(tag_id)
