"""
Repositories for TagDB - row mapping and entity-specific SQL.

Repositories are pure data access: they never validate business rules
or assign identifiers. Storage failures propagate as StorageError.
"""

from ..storage.rows import AnnotationRow, TagRow, TagStyleRow
from .annotations import AnnotationRepository
from .styles import TagStyleRepository
from .tags import TagRepository

__all__ = [
    "AnnotationRepository",
    "AnnotationRow",
    "TagRepository",
    "TagRow",
    "TagStyleRepository",
    "TagStyleRow",
]
