"""
Error types for TagDB.

This module defines every exception raised across the package:
- TagDbError: Base exception
- StorageError: Storage worker failures (bad SQL, constraint violations)
- TransportError: Worker crashed, stopped, or did not answer in time
- TagError: Tag business rule violations
- AnnotationError: Annotation business rule violations
- SyncError: Whole-snapshot export/import failures

Invariants:
    - All errors inherit from TagDbError
    - Services never raise StorageError; they re-map it to INVALID_DATA
    - Reason values are stable, callers branch on them
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class TagDbError(Exception):
    """Base exception for all TagDB errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TAGDB_ERROR"
        self.details = details or {}


class StorageError(TagDbError):
    """The storage worker rejected an operation.

    Raised when:
    - SQL is malformed
    - A constraint is violated
    - A snapshot image is corrupt or has a foreign schema
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="STORAGE_ERROR", details=details)


class TransportError(StorageError):
    """The channel to the storage worker failed.

    Raised when:
    - The worker thread crashed or was stopped with calls in flight
    - A call did not receive its response within the call timeout
    """

    def __init__(self, message: str, request_id: int | None = None) -> None:
        super().__init__(message, details={"request_id": request_id})
        self.code = "TRANSPORT_ERROR"
        self.request_id = request_id


class TagErrorReason(str, Enum):
    EMPTY_NAME = "EmptyName"
    DUPLICATE_NAME = "DuplicateName"
    NOT_FOUND = "NotFound"
    INVALID_DATA = "InvalidData"


class TagError(TagDbError):
    """A tag operation violated a business rule."""

    def __init__(
        self,
        reason: TagErrorReason,
        message: str,
        tag_id: str | None = None,
    ) -> None:
        super().__init__(message, code=reason.value, details={"tag_id": tag_id})
        self.reason = reason
        self.tag_id = tag_id


class AnnotationErrorReason(str, Enum):
    TAG_NOT_FOUND = "TagNotFound"
    NO_TOKENS = "NoTokens"
    NOT_FOUND = "NotFound"
    INVALID_TOKENS = "InvalidTokens"
    INVALID_DATA = "InvalidData"


class AnnotationError(TagDbError):
    """An annotation operation violated a business rule.

    Attributes:
        reason: Which rule failed
        invalid_tokens: Token ids rejected by the address grammar
    """

    def __init__(
        self,
        reason: AnnotationErrorReason,
        message: str,
        invalid_tokens: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=reason.value,
            details={"invalid_tokens": invalid_tokens or []},
        )
        self.reason = reason
        self.invalid_tokens = invalid_tokens or []


class SyncErrorReason(str, Enum):
    MANIFEST_NOT_FOUND = "ManifestNotFound"
    FILE_LOAD_FAILED = "FileLoadFailed"
    IMPORT_FAILED = "ImportFailed"
    EXPORT_FAILED = "ExportFailed"


class SyncError(TagDbError):
    """A snapshot export or import failed.

    Attributes:
        reason: Which stage failed
        filename: Snapshot file involved, when one is known
    """

    def __init__(
        self,
        reason: SyncErrorReason,
        message: str,
        filename: str | None = None,
    ) -> None:
        super().__init__(message, code=reason.value, details={"filename": filename})
        self.reason = reason
        self.filename = filename
