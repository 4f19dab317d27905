"""
Annotation service - business rules for annotations.

Token ids address one content unit each:

    <content-id>.<int>.<int>.<int>     e.g. gen.1.1.1, 1-ne.2.3.10

Invariants:
    - An annotation references an existing tag when created
    - token_ids is non-empty and every id matches the address grammar
    - version starts at 1 and grows by exactly 1 per update
    - last_modified never moves backwards
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

from ..errors import AnnotationError, AnnotationErrorReason, StorageError
from ..models import Annotation
from ..repositories import AnnotationRepository, TagRepository

logger = logging.getLogger(__name__)

TOKEN_ID_PATTERN = re.compile(r"[a-z0-9-]+\.\d+\.\d+\.\d+")

_UNSET: Any = object()


def invalid_token_ids(token_ids: Sequence[Any]) -> list[str]:
    """Return every token id that does not match the address grammar."""
    return [
        str(token_id)
        for token_id in token_ids
        if not isinstance(token_id, str) or TOKEN_ID_PATTERN.fullmatch(token_id) is None
    ]


def validate_token_ids(token_ids: Sequence[Any]) -> list[str]:
    """Check a token id list and return it as a new list.

    Raises:
        AnnotationError: NO_TOKENS or INVALID_TOKENS
    """
    if len(token_ids) == 0:
        raise AnnotationError(
            AnnotationErrorReason.NO_TOKENS, "At least one token ID is required"
        )

    invalid = invalid_token_ids(token_ids)
    if invalid:
        raise AnnotationError(
            AnnotationErrorReason.INVALID_TOKENS,
            f"Invalid token IDs: {', '.join(invalid)}",
            invalid_tokens=invalid,
        )
    return list(token_ids)


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except StorageError as e:
        raise AnnotationError(
            AnnotationErrorReason.INVALID_DATA, f"Database error: {e.message}"
        ) from e


def _not_found(annotation_id: str) -> AnnotationError:
    return AnnotationError(
        AnnotationErrorReason.NOT_FOUND, f'Annotation with id "{annotation_id}" not found'
    )


class AnnotationService:
    """Creates, updates and deletes annotations."""

    def __init__(
        self,
        annotations: AnnotationRepository,
        tags: TagRepository,
        user_id: str = "default",
    ) -> None:
        self.annotations = annotations
        self.tags = tags
        self.user_id = user_id

    async def create_annotation(
        self,
        tag_id: str,
        token_ids: Sequence[str],
        note: str | None = None,
    ) -> Annotation:
        """Apply a tag to a group of tokens.

        Raises:
            AnnotationError: TAG_NOT_FOUND, NO_TOKENS, INVALID_TOKENS or INVALID_DATA
        """
        with _storage_errors():
            if await self.tags.find_by_id(tag_id) is None:
                raise AnnotationError(
                    AnnotationErrorReason.TAG_NOT_FOUND, f'Tag with id "{tag_id}" not found'
                )

            valid_ids = validate_token_ids(token_ids)
            now = int(time.time() * 1000)

            annotation = Annotation(
                id=str(uuid.uuid4()),
                tag_id=tag_id,
                token_ids=valid_ids,
                user_id=self.user_id,
                note=note,
                created_at=now,
                last_modified=now,
                version=1,
            )
            await self.annotations.save(annotation)

        logger.info(
            "Created annotation",
            extra={"annotation_id": annotation.id, "tag_id": tag_id, "tokens": len(valid_ids)},
        )
        return annotation

    async def update_annotation(
        self,
        annotation_id: str,
        *,
        note: str | None = _UNSET,
        token_ids: Sequence[str] | None = None,
    ) -> Annotation:
        """Replace the note and/or token ids of an annotation.

        Raises:
            AnnotationError: NOT_FOUND, NO_TOKENS, INVALID_TOKENS or INVALID_DATA
        """
        with _storage_errors():
            existing = await self.annotations.find_by_id(annotation_id)
            if existing is None:
                raise _not_found(annotation_id)

            changes: dict[str, Any] = {}
            if token_ids is not None:
                changes["token_ids"] = validate_token_ids(token_ids)
            if note is not _UNSET:
                changes["note"] = note

            updated = replace(
                existing,
                **changes,
                last_modified=max(int(time.time() * 1000), existing.last_modified),
                version=existing.version + 1,
            )
            await self.annotations.save(updated)

        logger.info(
            "Updated annotation",
            extra={"annotation_id": annotation_id, "version": updated.version},
        )
        return updated

    async def delete_annotation(self, annotation_id: str) -> None:
        """Delete an annotation.

        Raises:
            AnnotationError: NOT_FOUND or INVALID_DATA
        """
        with _storage_errors():
            if await self.annotations.find_by_id(annotation_id) is None:
                raise _not_found(annotation_id)
            await self.annotations.delete(annotation_id)

        logger.info("Deleted annotation", extra={"annotation_id": annotation_id})

    async def get_annotation(self, annotation_id: str) -> Annotation:
        with _storage_errors():
            annotation = await self.annotations.find_by_id(annotation_id)
        if annotation is None:
            raise _not_found(annotation_id)
        return annotation

    async def get_annotations_for_token(self, token_id: str) -> list[Annotation]:
        with _storage_errors():
            return await self.annotations.find_by_token_id(token_id)

    async def get_annotations_for_tag(self, tag_id: str) -> list[Annotation]:
        with _storage_errors():
            return await self.annotations.find_by_tag_id(tag_id)

    async def get_all_annotations(self) -> list[Annotation]:
        with _storage_errors():
            return await self.annotations.get_all()
