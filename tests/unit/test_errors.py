"""
Unit tests for the error taxonomy and its HTTP status mapping.
"""

from backend.pm_server.api import status_for
from backend.pm_server.errors import (
    AuthenticationError,
    ConstraintError,
    CreationError,
    NotFoundError,
    PartialCreationError,
    PartialUpdateError,
    PmError,
    ReconcileError,
    StoreError,
    UpdateError,
    ValidationError,
)


class TestErrorBodies:
    """Tests for error payloads."""

    def test_base_error_defaults(self):
        error = PmError("Something broke")

        assert error.code == "PM_ERROR"
        assert error.to_dict() == {"error": "Something broke", "error_code": "PM_ERROR"}

    def test_validation_error_details(self):
        error = ValidationError("Invalid input", field_name="name", errors=["name: required"])

        body = error.to_dict()

        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "name"
        assert body["details"]["errors"] == ["name: required"]

    def test_authentication_error_hides_username(self):
        error = AuthenticationError("mallory")

        assert "mallory" not in error.message
        assert error.username == "mallory"

    def test_step_error_keeps_cause(self):
        """Wrapping errors expose the cause and its code."""
        cause = NotFoundError("Project 3 not found", resource_type="project", resource_id=3)
        error = UpdateError("Failed to update project 3", cause=cause)

        assert error.code == "UPDATE_FAILED"
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.details["cause_code"] == "NOT_FOUND"
        assert error.details["cause"] == "Project 3 not found"

    def test_store_error_body(self):
        error = StoreError("Store unavailable during login", "login")

        assert error.to_dict() == {
            "error": "Store unavailable during login",
            "error_code": "STORE_UNAVAILABLE",
            "details": {"operation": "login"},
        }

    def test_step_error_without_cause(self):
        error = ReconcileError("Failed")

        assert error.cause is None
        assert "cause_code" not in error.details

    def test_partial_creation_names_project_and_role(self):
        cause = ReconcileError(
            "Failed to update role 2 on project 12",
            cause=ConstraintError("Membership change references a missing user or role", "set_user_role"),
        )

        error = PartialCreationError(12, 2, [1], cause)

        assert error.code == "PARTIAL_CREATION"
        assert error.project_id == 12
        assert error.details["failed_role_id"] == 2
        assert error.details["applied_role_ids"] == [1]
        assert error.details["cause_code"] == "RECONCILE_FAILED"


class TestStatusMapping:
    """Tests for PmError to HTTP status."""

    def test_direct_errors(self):
        assert status_for(ValidationError("bad")) == 400
        assert status_for(AuthenticationError("x")) == 401
        assert status_for(NotFoundError("gone", "work", 1)) == 404
        assert status_for(ConstraintError("dup", "create_user")) == 409
        assert status_for(StoreError("Store unavailable during ping", "ping")) == 503

    def test_step_error_takes_cause_status(self):
        not_found = NotFoundError("gone", "project", 9)
        constraint = ConstraintError("bad ref", "create_project")

        assert status_for(UpdateError("x", cause=not_found)) == 404
        assert status_for(CreationError("x", cause=constraint)) == 409
        assert status_for(ReconcileError("x", cause=ValidationError("bad"))) == 400

    def test_store_unavailable_cause_is_503(self):
        unavailable = StoreError("Store unavailable during create_project", "create_project")

        assert status_for(CreationError("x", cause=unavailable)) == 503

    def test_step_error_without_known_cause(self):
        assert status_for(ReconcileError("x")) == 500

    def test_partial_errors(self):
        cause = ReconcileError("x")

        assert status_for(PartialCreationError(1, 2, [], cause)) == 207
        assert status_for(PartialUpdateError(1, 2, [], cause)) == 207
