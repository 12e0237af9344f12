"""Tests for the error taxonomy and its envelope."""

import pytest

from autoshop.engine.errors import (
    AuthenticationError,
    BusinessRuleError,
    ConflictError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ShopError,
    ValidationError,
)


@pytest.mark.parametrize("error,status,code", [
    (ValidationError(), 400, "VALIDATION_ERROR"),
    (NotFoundError("Job 1 not found"), 404, "NOT_FOUND"),
    (ConflictError("Duplicate"), 409, "CONFLICT"),
    (BusinessRuleError("No"), 400, "BUSINESS_RULE"),
    (InternalError(), 500, "INTERNAL_ERROR"),
    (AuthenticationError("Who?"), 401, "UNAUTHORIZED"),
    (PermissionDeniedError("No entry"), 403, "FORBIDDEN"),
])
def test_status_and_code(error, status, code):
    assert isinstance(error, ShopError)
    assert error.http_status == status
    assert error.to_envelope()["error"]["code"] == code


class TestEnvelope:
    def test_details_included_when_present(self):
        envelope = ValidationError(details=["Name is required"]).to_envelope()
        assert envelope == {"error": {
            "code": "VALIDATION_ERROR",
            "message": "Validation failed",
            "details": ["Name is required"],
        }}

    def test_details_omitted_when_empty(self):
        envelope = NotFoundError("Job 3 not found").to_envelope()
        assert "details" not in envelope["error"]

    def test_invalid_transition_is_business_rule(self):
        error = InvalidTransitionError("pending", "invoiced")
        assert isinstance(error, BusinessRuleError)
        assert error.to_envelope()["error"]["details"] == {
            "from": "pending", "to": "invoiced",
        }
        assert "pending" in error.message
