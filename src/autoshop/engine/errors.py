"""Shop error taxonomy and the JSON error envelope."""

from typing import Optional

VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
BUSINESS_RULE = "BUSINESS_RULE"
INTERNAL_ERROR = "INTERNAL_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"


class ShopError(Exception):
    """Base class for every user-visible failure.

    Carries a machine-readable ``code``, the HTTP status the boundary
    should answer with, a human message and optional ``details``.
    """

    code = INTERNAL_ERROR
    http_status = 500

    def __init__(self, message: str, details: Optional[list | dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_envelope(self) -> dict:
        """Render as ``{"error": {"code", "message", "details"?}}``."""
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class ValidationError(ShopError):
    code = VALIDATION_ERROR
    http_status = 400

    def __init__(self, message: str = "Validation failed",
                 details: Optional[list | dict] = None):
        super().__init__(message, details)


class NotFoundError(ShopError):
    code = NOT_FOUND
    http_status = 404


class ConflictError(ShopError):
    code = CONFLICT
    http_status = 409


class BusinessRuleError(ShopError):
    code = BUSINESS_RULE
    http_status = 400


class InvalidTransitionError(BusinessRuleError):
    """A job status change that the state machine does not allow."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change job status from '{current}' to '{requested}'",
            {"from": current, "to": requested},
        )
        self.current = current
        self.requested = requested


class InternalError(ShopError):
    code = INTERNAL_ERROR
    http_status = 500

    def __init__(self, message: str = "An unexpected error occurred",
                 details: Optional[list | dict] = None):
        super().__init__(message, details)


class AuthenticationError(ShopError):
    code = UNAUTHORIZED
    http_status = 401


class PermissionDeniedError(ShopError):
    code = FORBIDDEN
    http_status = 403
