"""
Error types for PM Server.

This module defines every exception the service layer raises:
- PmError: Base exception
- ValidationError: Malformed or missing input, detected before the store
- AuthenticationError: Credential lookup failed
- NotFoundError: Referenced entity does not exist
- ConstraintError: Store rejected a write (foreign key, uniqueness)
- StoreError: Store failed for a reason other than the data (lock, I/O)
- ReconcileError / UpdateError / CreationError: A single step failed
- PartialCreationError / PartialUpdateError: A parent step committed,
  a dependent step failed

Invariants:
    - All errors inherit from PmError
    - Wrapping errors keep the underlying error as ``cause``
    - Messages are safe to show to users; raw store text stays in logs
"""

from __future__ import annotations

from typing import Any


class PmError(Exception):
    """Base exception for all PM Server errors.

    Attributes:
        message: Human-readable error message
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
        self.code = code or "PM_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a response body."""
        body: dict[str, Any] = {"error": self.message, "error_code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PmError):
    """Input validation failed.

    Raised when:
    - Required field is missing
    - Field value has wrong type
    - A membership delta adds and removes the same user
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class AuthenticationError(PmError):
    """Username/password pair did not resolve to a user."""

    def __init__(self, username: str) -> None:
        super().__init__("Invalid username or password", code="AUTHENTICATION_FAILED")
        self.username = username


class NotFoundError(PmError):
    """Resource not found.

    Raised when:
    - Project, Backlog or Work id doesn't exist
    - A membership relation key doesn't resolve
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: int | str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConstraintError(PmError):
    """Store-side referential or uniqueness violation.

    Raised when:
    - A foreign key points at a missing user, role or parent
    - A unique column receives a duplicate value
    """

    def __init__(self, message: str, operation: str) -> None:
        super().__init__(
            message,
            code="CONSTRAINT_VIOLATION",
            details={"operation": operation},
        )
        self.operation = operation


class StoreError(PmError):
    """Store could not complete an operation.

    Raised when:
    - The database stays locked past the busy timeout
    - The database file cannot be read or written

    The raw SQLite message is logged by the store, never carried here.
    """

    def __init__(self, message: str, operation: str) -> None:
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details={"operation": operation},
        )
        self.operation = operation


class _StepError(PmError):
    """A single orchestrated step failed; ``cause`` holds the reason."""

    default_code = "STEP_FAILED"

    def __init__(
        self,
        message: str,
        cause: PmError | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if cause is not None:
            details["cause_code"] = cause.code
            details["cause"] = cause.message
        super().__init__(message, code=self.default_code, details=details)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ReconcileError(_StepError):
    """Membership reconciliation failed for a whole relation."""

    default_code = "RECONCILE_FAILED"


class UpdateError(_StepError):
    """Partial update of an entity failed."""

    default_code = "UPDATE_FAILED"


class CreationError(_StepError):
    """Parent entity creation failed; nothing was persisted."""

    default_code = "CREATION_FAILED"


class PartialCreationError(PmError):
    """Project was created but a dependent role grant failed.

    The project is persisted and stays persisted; callers must follow up
    on the failed grant themselves.

    Attributes:
        project_id: Id of the created project
        failed_role_id: Role whose grant failed
        applied_role_ids: Roles granted before the failure
        cause: The reconciliation error
    """

    def __init__(
        self,
        project_id: int,
        failed_role_id: int,
        applied_role_ids: list[int],
        cause: ReconcileError,
    ) -> None:
        super().__init__(
            f"Project {project_id} was created but granting role {failed_role_id} failed",
            code="PARTIAL_CREATION",
            details={
                "project_id": project_id,
                "failed_role_id": failed_role_id,
                "applied_role_ids": applied_role_ids,
                "cause_code": cause.code,
                "cause": cause.message,
            },
        )
        self.project_id = project_id
        self.failed_role_id = failed_role_id
        self.applied_role_ids = applied_role_ids
        self.cause = cause
        self.__cause__ = cause


class PartialUpdateError(PmError):
    """Project fields were updated but a role reconciliation failed."""

    def __init__(
        self,
        project_id: int,
        failed_role_id: int,
        applied_role_ids: list[int],
        cause: ReconcileError,
    ) -> None:
        super().__init__(
            f"Project {project_id} was updated but changing role {failed_role_id} failed",
            code="PARTIAL_UPDATE",
            details={
                "project_id": project_id,
                "failed_role_id": failed_role_id,
                "applied_role_ids": applied_role_ids,
                "cause_code": cause.code,
                "cause": cause.message,
            },
        )
        self.project_id = project_id
        self.failed_role_id = failed_role_id
        self.applied_role_ids = applied_role_ids
        self.cause = cause
        self.__cause__ = cause
