"""
Row models for the tag store tables.

Each model describes one stored row exactly as SQLite returns it. The
same models check rows read by the repositories, rows about to be
written, and rows arriving in a foreign snapshot, so anything accepted
on the way in can be read back.

Invariants:
    - Field order matches the column tuples in schema.py
    - annotations.token_ids is a JSON array of strings
    - Style hint columns hold one of the allowed values or NULL
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Json

from ..models import (
    Annotation,
    FontWeight,
    IconPosition,
    StyleHints,
    Tag,
    TagMetadata,
    TagStyle,
    UnderlineStyle,
)


class TagRow(BaseModel):
    """A tags row as stored."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    description: str | None
    category: str | None
    color: str | None
    icon: str | None
    priority: int | None
    created_at: int
    user_id: str

    def to_tag(self) -> Tag:
        return Tag(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            metadata=TagMetadata(color=self.color, icon=self.icon, priority=self.priority),
            created_at=self.created_at,
            user_id=self.user_id,
        )


class AnnotationRow(BaseModel):
    """An annotations row as stored."""

    model_config = ConfigDict(extra="forbid")

    id: str
    tag_id: str
    token_ids: Json[list[str]]
    user_id: str
    note: str | None
    created_at: int
    last_modified: int
    version: int

    def to_annotation(self) -> Annotation:
        return Annotation(
            id=self.id,
            tag_id=self.tag_id,
            token_ids=list(self.token_ids),
            user_id=self.user_id,
            note=self.note,
            created_at=self.created_at,
            last_modified=self.last_modified,
            version=self.version,
        )


class TagStyleRow(BaseModel):
    """A tag_styles row as stored."""

    model_config = ConfigDict(extra="forbid")

    tag_id: str
    user_id: str | None
    background_color: str | None
    text_color: str | None
    underline_style: UnderlineStyle | None
    underline_color: str | None
    font_weight: FontWeight | None
    icon: str | None
    icon_position: IconPosition | None
    opacity: float | None

    def to_style(self) -> TagStyle:
        return TagStyle(
            tag_id=self.tag_id,
            user_id=self.user_id,
            style=StyleHints(
                background_color=self.background_color,
                text_color=self.text_color,
                underline_style=self.underline_style,
                underline_color=self.underline_color,
                font_weight=self.font_weight,
                icon=self.icon,
                icon_position=self.icon_position,
                opacity=self.opacity,
            ),
        )


# Table name -> row model
ROW_MODELS: dict[str, type[BaseModel]] = {
    "tags": TagRow,
    "annotations": AnnotationRow,
    "tag_styles": TagStyleRow,
}


def tag_to_row(tag: Tag) -> tuple[Any, ...]:
    return (
        tag.id,
        tag.name,
        tag.description,
        tag.category,
        tag.metadata.color,
        tag.metadata.icon,
        tag.metadata.priority,
        tag.created_at,
        tag.user_id,
    )


def annotation_to_row(annotation: Annotation) -> tuple[Any, ...]:
    return (
        annotation.id,
        annotation.tag_id,
        json.dumps(annotation.token_ids, separators=(",", ":")),
        annotation.user_id,
        annotation.note,
        annotation.created_at,
        annotation.last_modified,
        annotation.version,
    )


def style_to_row(tag_style: TagStyle) -> tuple[Any, ...]:
    hints = tag_style.style
    return (
        tag_style.tag_id,
        tag_style.user_id,
        hints.background_color,
        hints.text_color,
        hints.underline_style,
        hints.underline_color,
        hints.font_weight,
        hints.icon,
        hints.icon_position,
        hints.opacity,
    )
