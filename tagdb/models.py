"""
Domain records for TagDB.

Timestamps are Unix milliseconds, matching the persisted columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

UnderlineStyle = Literal["solid", "dashed", "dotted", "wavy", "double"]
FontWeight = Literal["normal", "bold", "semibold"]
IconPosition = Literal["before", "after", "above", "below"]


class MergeStrategy(str, Enum):
    """How rows of a foreign snapshot interact with local rows."""

    REPLACE = "replace"
    MERGE = "merge"
    SKIP_EXISTING = "skip-existing"


@dataclass
class TagMetadata:
    """Presentation metadata for a tag.

    Attributes:
        color: Default color (#hex)
        icon: Icon identifier
        priority: Ordering for overlapping annotations (higher = top)
    """

    color: str | None = None
    icon: str | None = None
    priority: int | None = None


@dataclass
class Tag:
    """A user-defined label.

    Attributes:
        id: Tag identifier (UUID)
        name: Display name, unique among tags
        created_at: Creation timestamp (Unix ms)
        user_id: Owning user
        description: Optional description
        category: Optional free-form grouping
        metadata: Presentation metadata
    """

    id: str
    name: str
    created_at: int
    user_id: str
    description: str | None = None
    category: str | None = None
    metadata: TagMetadata = field(default_factory=TagMetadata)


@dataclass
class Annotation:
    """A tag applied to one or more token ids.

    Attributes:
        id: Annotation identifier (UUID)
        tag_id: Referenced tag
        token_ids: Token addresses, order preserved as authored
        user_id: Owning user
        created_at: Creation timestamp (Unix ms)
        last_modified: Last mutation timestamp (Unix ms)
        version: Starts at 1, incremented on every mutation
        note: Optional free-text note
    """

    id: str
    tag_id: str
    token_ids: list[str]
    user_id: str
    created_at: int
    last_modified: int
    version: int = 1
    note: str | None = None


@dataclass
class StyleHints:
    """Rendering hints of a tag style."""

    background_color: str | None = None
    text_color: str | None = None
    underline_style: UnderlineStyle | None = None
    underline_color: str | None = None
    font_weight: FontWeight | None = None
    icon: str | None = None
    icon_position: IconPosition | None = None
    opacity: float | None = None


@dataclass
class TagStyle:
    """Per-tag presentation override, global when user_id is None."""

    tag_id: str
    user_id: str | None = None
    style: StyleHints = field(default_factory=StyleHints)
