"""
Business services for TagDB.

Services validate requests before any row is written and own id and
version assignment; repositories stay pure data access.
"""

from .annotations import AnnotationService, invalid_token_ids
from .tags import TagService

__all__ = ["AnnotationService", "TagService", "invalid_token_ids"]
