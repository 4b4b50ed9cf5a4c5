"""
Error types for draft versioning.

This module defines every exception raised by the versioning core:
- DraftVcError: Base exception
- NotFoundError: Unknown id for the given owner
- ForbiddenError: Update touches fields that only change through new versions
- ValidationError: Malformed input
- StorageFailure: I/O or transport error from the version store
- VersionConflictError: Concurrent append lost the version-number race
- InvariantViolation: Operation would break a family invariant
- ComparisonInputError: Comparator inputs did not resolve to two records

"No change" is not an error. The engine reports it as a NoChange outcome
(see engine.py) so that it can never be confused with a failed write.

Invariants:
    - All errors inherit from DraftVcError
    - Every error carries a stable code for programmatic handling
    - Store backends chain the driver exception as __cause__
"""

from __future__ import annotations

from typing import Any


class DraftVcError(Exception):
    """Base exception for all draft versioning errors.

    Attributes:
        message: Human-readable reason
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
        self.code = code or "DRAFTVC_ERROR"
        self.details = details or {}


class NotFoundError(DraftVcError):
    """No version with this id exists for this owner.

    Queries are owner-scoped, so an id that belongs to someone else is
    indistinguishable from an id that does not exist.
    """

    def __init__(self, message: str, version_id: str | None = None) -> None:
        super().__init__(message, code="NOT_FOUND", details={"version_id": version_id})
        self.version_id = version_id


class ForbiddenError(DraftVcError):
    """Requested change is not allowed on an existing version.

    Raised when an in-place update names content, hash, lineage or
    numbering fields.
    """

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message, code="FORBIDDEN", details={"fields": fields or []})
        self.fields = fields or []


class ValidationError(DraftVcError):
    """Input failed validation."""

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field_name})
        self.field_name = field_name


class StorageFailure(DraftVcError):
    """The version store failed to read or write.

    Raised when:
    - The store is not connected
    - The underlying driver reports an error
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        code: str = "STORAGE_FAILURE",
    ) -> None:
        super().__init__(message, code=code, details={"operation": operation})
        self.operation = operation


class VersionConflictError(StorageFailure):
    """Another writer took the next version number in this family first."""

    def __init__(self, message: str, root_id: str | None = None) -> None:
        super().__init__(message, operation="create", code="VERSION_CONFLICT")
        self.details["root_id"] = root_id
        self.root_id = root_id


class InvariantViolation(DraftVcError):
    """Operation would break a family invariant.

    Attributes:
        invariant: Name of the invariant, e.g. "LastActiveVersion"
    """

    def __init__(self, invariant: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Invariant violated: {invariant}",
            code="INVARIANT_VIOLATION",
            details={"invariant": invariant},
        )
        self.invariant = invariant


class ComparisonInputError(DraftVcError):
    """Comparator inputs did not resolve to exactly two records."""

    def __init__(self, message: str, version_ids: list[str] | None = None) -> None:
        super().__init__(
            message,
            code="COMPARISON_INPUT",
            details={"version_ids": version_ids or []},
        )
        self.version_ids = version_ids or []
