"""
Error types for ProductSync.

Every failure the reconciler can report derives from ``ProductSyncError`` so
the CLI can turn any of them into a single diagnostic.
"""

from typing import Any, Optional


class ProductSyncError(Exception):
    """Base class for all ProductSync errors."""


class InvalidVersion(ProductSyncError, ValueError):
    """A version string or component sequence could not be parsed or encoded."""


class NotFound(ProductSyncError, LookupError):
    """An archive entry, manifest field, store key or record group is missing."""


class AmbiguousMatch(ProductSyncError, LookupError):
    """More than one record matched where the caller required exactly one."""


class StoreWriteFailure(ProductSyncError):
    """A single field write was rejected by the underlying store."""

    def __init__(
        self,
        path: str,
        field: str,
        value: Any,
        cause: Optional[BaseException] = None,
        group: Optional[str] = None,
    ):
        self.path = path
        self.field = field
        self.value = value
        self.cause = cause
        self.group = group
        message = f"Failed to write {field}={value!r} at {path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
